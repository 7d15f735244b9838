"""Suivi de l'état du cache (marqueurs d'initialisation et de validation).

La ligne unique `cache_state` porte :
- le hash de la configuration surveillée (dossier + récursivité)
- le marqueur "cache initialisé"
- l'horodatage de la dernière validation disque / cache

Un changement de configuration efface les deux marqueurs en une seule
instruction : les replays déjà en cache sont conservés, seul le prochain
run repart en mode "premier run".

L'état est gardé en mémoire après la première lecture, ce qui permet au
chemin nominal (validation récente) de ne toucher ni le disque ni la base.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from sc2reveal.data.sync.models import CacheState
from sc2reveal.data.sync.store import ReplayStore, utc_now

logger = logging.getLogger(__name__)


def normalize_folder(folder: str | Path | None) -> str:
    """Chemin absolu du dossier surveillé (chaîne vide si non configuré)."""
    if not folder:
        return ""
    return str(Path(folder).expanduser().resolve())


def compute_config_hash(folder: str | Path | None, recursive: bool) -> str:
    """Hash SHA-256 de la configuration surveillée."""
    payload = f"{normalize_folder(folder)}|{bool(recursive)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CacheStateTracker:
    """Lecture/écriture de la ligne cache_state."""

    def __init__(
        self,
        store: ReplayStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock
        self._state: CacheState | None = None

    @property
    def state(self) -> CacheState:
        """État courant (chargé depuis la base au premier accès)."""
        if self._state is None:
            self._state = self._load()
        return self._state

    def now(self) -> datetime:
        return self._clock()

    def _load(self) -> CacheState:
        with self._store.cursor() as cur:
            row = cur.execute(
                """SELECT config_hash, cache_initialized_at, last_validated_at, updated_at
                   FROM cache_state WHERE id = 1"""
            ).fetchone()
        if row is None:
            return CacheState()
        return CacheState(
            config_hash=row[0],
            cache_initialized_at=row[1],
            last_validated_at=row[2],
            updated_at=row[3],
        )

    def _save(self, state: CacheState) -> None:
        state.updated_at = self.now()
        with self._store.cursor() as cur:
            cur.execute(
                """INSERT OR REPLACE INTO cache_state
                   (id, config_hash, cache_initialized_at, last_validated_at, updated_at)
                   VALUES (1, ?, ?, ?, ?)""",
                [
                    state.config_hash,
                    state.cache_initialized_at,
                    state.last_validated_at,
                    state.updated_at,
                ],
            )
        self._state = state

    def reload(self) -> CacheState:
        """Force la relecture depuis la base."""
        self._state = self._load()
        return self._state

    def apply_config(self, config_hash: str) -> bool:
        """Compare le hash de configuration et invalide les marqueurs si besoin.

        Le nouveau hash est enregistré dans tous les cas.

        Args:
            config_hash: Hash de la configuration courante.

        Returns:
            True si les marqueurs ont été effacés (configuration changée).
        """
        current = self.state
        invalidated = current.config_hash is not None and current.config_hash != config_hash

        if invalidated:
            logger.info("Configuration des replays modifiée, invalidation du cache")
            self._save(CacheState(config_hash=config_hash))
        elif current.config_hash != config_hash:
            self._save(
                CacheState(
                    config_hash=config_hash,
                    cache_initialized_at=current.cache_initialized_at,
                    last_validated_at=current.last_validated_at,
                )
            )
        return invalidated

    def mark_initialized(self) -> None:
        """Pose le marqueur d'initialisation et l'horodatage de validation."""
        now = self.now()
        current = self.state
        self._save(
            CacheState(
                config_hash=current.config_hash,
                cache_initialized_at=now,
                last_validated_at=now,
            )
        )

    def mark_validated(self) -> None:
        """Rafraîchit l'horodatage de dernière validation."""
        current = self.state
        self._save(
            CacheState(
                config_hash=current.config_hash,
                cache_initialized_at=current.cache_initialized_at,
                last_validated_at=self.now(),
            )
        )

    def is_validation_due(self, interval: timedelta) -> bool:
        """Vrai si la dernière validation est plus vieille que `interval`."""
        return self.state.is_validation_due(self.now(), interval)
