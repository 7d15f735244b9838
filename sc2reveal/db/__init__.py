"""Accès DuckDB du cache de replays."""

from sc2reveal.db.connection import (
    MEMORY_DB,
    open_connection,
)
from sc2reveal.db.duckdb_config import DuckDBConfig

__all__ = [
    "MEMORY_DB",
    "DuckDBConfig",
    "open_connection",
]
