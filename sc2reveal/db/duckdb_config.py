"""Réglages de la connexion DuckDB du cache de replays.

Le cache reste petit (quelques milliers de replays) : la limite mémoire
par défaut est basse et le nombre de threads DuckDB est laissé à
l'auto-détection, sauf override via l'environnement :

    SC2REVEAL_DUCKDB_MEMORY_LIMIT=512MB
    SC2REVEAL_DUCKDB_THREADS=2
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_LIMIT = "256MB"

ENV_MEMORY_LIMIT = "SC2REVEAL_DUCKDB_MEMORY_LIMIT"
ENV_THREADS = "SC2REVEAL_DUCKDB_THREADS"


def _threads_from_env() -> int | None:
    raw = os.environ.get(ENV_THREADS, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"{ENV_THREADS} ignoré (entier attendu): {raw!r}")
        return None
    return value if value > 0 else None


@dataclass
class DuckDBConfig:
    """Paramètres appliqués à chaque connexion ouverte par le store.

    Attributes:
        memory_limit: Limite mémoire DuckDB (ex: "256MB").
        threads: Threads DuckDB (None = auto).
        settings: Autres `SET key = value` appliqués tels quels.
    """

    memory_limit: str = DEFAULT_MEMORY_LIMIT
    threads: int | None = None
    settings: dict[str, str | int | bool] = field(
        default_factory=lambda: {"enable_progress_bar": False}
    )

    @classmethod
    def from_env(cls) -> DuckDBConfig:
        """Construit la configuration en tenant compte des overrides SC2REVEAL_DUCKDB_*."""
        return cls(
            memory_limit=os.environ.get(ENV_MEMORY_LIMIT, "").strip() or DEFAULT_MEMORY_LIMIT,
            threads=_threads_from_env(),
        )

    def statements(self) -> list[str]:
        """Instructions SET correspondant à la configuration."""
        stmts = [f"SET memory_limit = '{self.memory_limit}'"]
        if self.threads is not None:
            stmts.append(f"SET threads = {int(self.threads)}")
        for key, value in self.settings.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif isinstance(value, str):
                value = f"'{value}'"
            stmts.append(f"SET {key} = {value}")
        return stmts

    def apply(self, conn: duckdb.DuckDBPyConnection) -> None:
        """Applique la configuration à une connexion ouverte."""
        for stmt in self.statements():
            conn.execute(stmt)
