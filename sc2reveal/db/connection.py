"""Ouverture des connexions DuckDB du cache de replays."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sc2reveal.db.duckdb_config import DuckDBConfig

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)

# Chemin spécial DuckDB pour une base en mémoire
MEMORY_DB = ":memory:"


def _ensure_db_path(db_path: str) -> None:
    if not db_path.strip():
        raise ValueError("db_path doit être un chemin non vide")


def open_connection(
    db_path: Path | str,
    *,
    config: DuckDBConfig | None = None,
    read_only: bool = False,
) -> duckdb.DuckDBPyConnection:
    """Ouvre et configure une connexion DuckDB.

    Crée le dossier parent si nécessaire.

    Args:
        db_path: Chemin vers le fichier .duckdb (ou ":memory:").
        config: Configuration DuckDB (défaut: DuckDBConfig.from_env()).
        read_only: Ouvrir en lecture seule.

    Returns:
        Connexion DuckDB ouverte et configurée.

    Raises:
        ValueError: Si db_path est vide.
    """
    path_str = str(db_path)
    _ensure_db_path(path_str)
    import duckdb

    if path_str != MEMORY_DB:
        Path(path_str).parent.mkdir(parents=True, exist_ok=True)

    conn = duckdb.connect(path_str, read_only=read_only)
    (config or DuckDBConfig.from_env()).apply(conn)
    logger.debug(f"Connexion DuckDB ouverte: {path_str}")
    return conn

