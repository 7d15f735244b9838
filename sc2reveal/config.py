"""Configuration applicative.

Charge `app_settings.json` dans des modèles Pydantic et applique les
overrides d'environnement. La section applicative peut être imbriquée
sous la clé "barcodeReveal" (format historique du fichier de settings).

Usage:
    from sc2reveal.config import load_settings

    settings = load_settings()
    print(settings.replays.folder, settings.user.battle_tag)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sc2reveal.errors import ConfigurationError
from sc2reveal.utils.paths import get_cache_db_path, get_settings_path

logger = logging.getLogger(__name__)

# Clé de la section applicative dans app_settings.json
SETTINGS_SECTION = "barcodeReveal"

# Intervalle de revalidation du cache par défaut (minutes)
DEFAULT_VALIDATION_INTERVAL_MINUTES = 60


class UserSettings(BaseModel):
    """Identité de l'utilisateur de l'outil."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    battle_tag: str = Field(default="", alias="battleTag", description="Battle-tag de référence")

    @field_validator("battle_tag", mode="before")
    @classmethod
    def strip_battle_tag(cls, v: Any) -> str:
        """Nettoie le battle-tag."""
        if v is None:
            return ""
        return str(v).strip()


class ReplaysSettings(BaseModel):
    """Dossier de replays surveillé."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    folder: str = Field(default="", description="Dossier des fichiers .SC2Replay")
    recursive: bool = Field(default=True, description="Parcourir les sous-dossiers")


class CacheSettings(BaseModel):
    """Paramètres du cache DuckDB et du pipeline de synchronisation."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    data_dir: str | None = Field(default=None, alias="dataDir")
    validation_interval_minutes: int = Field(
        default=DEFAULT_VALIDATION_INTERVAL_MINUTES, ge=0, alias="validationIntervalMinutes"
    )
    decode_timeout_seconds: float = Field(default=30.0, gt=0, alias="decodeTimeoutSeconds")
    busy_timeout_seconds: float = Field(default=5.0, ge=0, alias="busyTimeoutSeconds")
    extraction_parallelism: int = Field(default=1, ge=1, alias="extractionParallelism")
    insert_parallelism: int | None = Field(default=None, ge=1, alias="insertParallelism")
    progress_log_every: int = Field(default=50, ge=1, alias="progressLogEvery")


class AppSettings(BaseModel):
    """Configuration complète de l'application."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user: UserSettings = Field(default_factory=UserSettings)
    replays: ReplaysSettings = Field(default_factory=ReplaysSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @property
    def db_path(self) -> Path:
        """Chemin du fichier DuckDB du cache."""
        return get_cache_db_path(self.cache.data_dir)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Applique les overrides SC2REVEAL_* sur le dict brut."""
    overrides = (
        ("SC2REVEAL_REPLAYS_FOLDER", "replays", "folder", "folder"),
        ("SC2REVEAL_BATTLE_TAG", "user", "battleTag", "battle_tag"),
        ("SC2REVEAL_DATA_DIR", "cache", "dataDir", "data_dir"),
    )
    for env_name, section, alias, field_name in overrides:
        value = os.environ.get(env_name)
        if not value:
            continue
        sub = dict(data.get(section) or {})
        sub.pop(alias, None)
        sub[field_name] = value
        data[section] = sub
    return data


def load_settings(path: Path | str | None = None) -> AppSettings:
    """Charge les settings depuis app_settings.json.

    Un fichier absent donne la configuration par défaut.

    Args:
        path: Chemin du fichier (défaut: racine du projet).

    Returns:
        AppSettings validé.

    Raises:
        ConfigurationError: Si le fichier est illisible ou invalide.
    """
    settings_path = Path(path) if path else get_settings_path()
    raw: dict[str, Any] = {}

    if settings_path.exists():
        try:
            with open(settings_path, encoding="utf-8") as f:
                raw = json.load(f) or {}
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(str(settings_path), f"lecture impossible: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(str(settings_path), "objet JSON attendu")
        if isinstance(raw.get(SETTINGS_SECTION), dict):
            raw = raw[SETTINGS_SECTION]
    else:
        logger.debug(f"Settings absents ({settings_path}), valeurs par défaut")

    raw = _apply_env_overrides(dict(raw))

    try:
        return AppSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(str(settings_path), str(e)) from e
