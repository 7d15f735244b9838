"""Gestion centralisée des chemins pour le projet.

Ce module définit les chemins utilisés par le cache de replays :
- data/replays.duckdb : cache local des replays
- app_settings.json : configuration utilisateur (à la racine)
"""

from __future__ import annotations

import os
from pathlib import Path

# =============================================================================
# Chemins racine
# =============================================================================


def _find_repo_root() -> Path:
    """Trouve la racine du projet (contient pyproject.toml ou .git)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent

    # Fallback : variable d'environnement ou CWD
    if env_root := os.environ.get("SC2REVEAL_ROOT"):
        return Path(env_root)

    return Path.cwd()


# Racine du projet
REPO_ROOT: Path = _find_repo_root()

# Dossier des données (surchargeable via SC2REVEAL_DATA_DIR)
DATA_DIR: Path = Path(os.environ.get("SC2REVEAL_DATA_DIR") or REPO_ROOT / "data")


# =============================================================================
# Constantes de noms de fichiers
# =============================================================================

# Nom du fichier DuckDB du cache de replays
CACHE_DB_FILENAME = "replays.duckdb"

# Nom du fichier de configuration utilisateur
SETTINGS_FILENAME = "app_settings.json"

# Motif des fichiers replay (comparaison insensible à la casse)
REPLAY_FILE_SUFFIX = ".sc2replay"


# =============================================================================
# Fonctions utilitaires
# =============================================================================


def get_cache_db_path(data_dir: Path | str | None = None) -> Path:
    """Retourne le chemin du cache DuckDB.

    Args:
        data_dir: Dossier de données (défaut: DATA_DIR).

    Returns:
        Chemin vers replays.duckdb.
    """
    base = Path(data_dir) if data_dir else DATA_DIR
    return base / CACHE_DB_FILENAME


def get_settings_path() -> Path:
    """Retourne le chemin par défaut de app_settings.json."""
    return REPO_ROOT / SETTINGS_FILENAME


def is_replay_file(path: Path) -> bool:
    """Vrai si le fichier porte l'extension .SC2Replay (toute casse)."""
    return path.suffix.lower() == REPLAY_FILE_SUFFIX


def list_replay_files(folder: Path | str | None, *, recursive: bool = True) -> list[Path]:
    """Liste les fichiers replay d'un dossier.

    Un dossier absent ou illisible donne une liste vide.

    Args:
        folder: Dossier des replays.
        recursive: Parcourir les sous-dossiers.

    Returns:
        Chemins absolus triés.
    """
    if not folder:
        return []
    root = Path(folder).expanduser()
    if not root.is_dir():
        return []

    try:
        candidates = root.rglob("*") if recursive else root.iterdir()
        files = [p.resolve() for p in candidates if p.is_file() and is_replay_file(p)]
    except OSError:
        return []
    return sorted(files)
