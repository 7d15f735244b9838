"""Utilitaires partagés du projet."""

from sc2reveal.utils.paths import (
    CACHE_DB_FILENAME,
    DATA_DIR,
    REPO_ROOT,
    get_cache_db_path,
    get_settings_path,
    list_replay_files,
)
from sc2reveal.utils.toon import (
    UNKNOWN_BATTLE_TAG,
    make_placeholder_toon,
    normalize_battle_tag,
    normalize_toon_handle,
    toon_handle_last_bit,
    toon_handle_suffix,
    toon_handles_match,
)

__all__ = [
    "CACHE_DB_FILENAME",
    "DATA_DIR",
    "REPO_ROOT",
    "UNKNOWN_BATTLE_TAG",
    "get_cache_db_path",
    "get_settings_path",
    "list_replay_files",
    "make_placeholder_toon",
    "normalize_battle_tag",
    "normalize_toon_handle",
    "toon_handle_last_bit",
    "toon_handle_suffix",
    "toon_handles_match",
]
