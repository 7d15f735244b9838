"""Moteur de synchronisation dossier de replays → cache DuckDB.

Ce module contient le ReplaySyncEngine qui orchestre tout le pipeline :
Disque → Extraction (étape 1) → Identités + écriture DuckDB (étape 2)

Usage:
    engine = ReplaySyncEngine(
        ReplayStore("data/replays.duckdb"),
        extractor_factory=MyDecoder,
        replays_folder="C:/Users/me/Documents/StarCraft II/Accounts",
        user_battle_tag="Me#1234",
    )

    # Au démarrage (une seule fois par processus)
    result = await engine.initialize_cache()

    # Périodiquement (peu coûteux si rien n'a changé)
    result = await engine.sync_from_disk()
    print(result.to_message())

    # Dès qu'une partie se termine
    result = await engine.save_single_replay(path)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from sc2reveal.data.sync.cache_state import CacheStateTracker, compute_config_hash
from sc2reveal.data.sync.extraction import (
    ExtractorFactory,
    ExtractorPool,
    extract_metadata_batch,
)
from sc2reveal.data.sync.identity import IdentityResolver
from sc2reveal.data.sync.models import (
    PHASE_STORE,
    ProgressCallback,
    ReplayMetadata,
    SyncOptions,
    SyncResult,
)
from sc2reveal.data.sync.store import ReplayStore
from sc2reveal.errors import ConfigurationError, StoreWriteError
from sc2reveal.utils.paths import list_replay_files

if TYPE_CHECKING:
    from sc2reveal.config import AppSettings

logger = logging.getLogger(__name__)


def compute_parallelism(cpu_count: int | None = None) -> int:
    """Nombre d'insertions simultanées selon le nombre de cœurs.

    | Cœurs | Parallélisme |
    |-------|--------------|
    | ≤ 2   | 1            |
    | 3-4   | 50 %         |
    | 5-8   | 60 %         |
    | 9-16  | 70 %         |
    | > 16  | 75 %         |
    """
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    if cores <= 2:
        return 1
    if cores <= 4:
        value = cores // 2
    elif cores <= 8:
        value = cores * 3 // 5
    elif cores <= 16:
        value = cores * 7 // 10
    else:
        value = cores * 3 // 4
    return max(1, value)


class ReplaySyncEngine:
    """Moteur de synchronisation dossier → DuckDB.

    Gère le pipeline en deux étapes :
    1. Extraction des métadonnées (séquentielle par défaut, timeout par fichier)
    2. Résolution des identités + insertion, en parallèle borné

    Un seul run à la fois (verrou asyncio) ; les workers de l'étape 2
    tournent dans des threads avec chacun leur curseur DuckDB.
    """

    def __init__(
        self,
        store: ReplayStore,
        extractor_factory: ExtractorFactory,
        *,
        replays_folder: Path | str | None,
        user_battle_tag: str | None,
        recursive: bool = True,
        options: SyncOptions | None = None,
    ) -> None:
        """
        Args:
            store: Cache DuckDB.
            extractor_factory: Fabrique d'extracteurs (un par slot concurrent).
            replays_folder: Dossier des replays surveillé.
            user_battle_tag: Battle-tag de référence de l'utilisateur.
            recursive: Parcourir les sous-dossiers.
            options: Options de synchronisation.
        """
        self._store = store
        self._pool = ExtractorPool(extractor_factory)
        self._resolver = IdentityResolver(store)
        self._tracker = CacheStateTracker(store)
        self._replays_folder = str(replays_folder) if replays_folder else ""
        self._recursive = recursive
        self._user_battle_tag = (user_battle_tag or "").strip()
        self._options = options or SyncOptions()

        self._sync_lock = asyncio.Lock()
        self._initialized = False
        self._config_checked = False

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        extractor_factory: ExtractorFactory,
        *,
        store: ReplayStore | None = None,
    ) -> ReplaySyncEngine:
        """Construit le moteur depuis AppSettings."""
        options = SyncOptions.from_settings(settings)
        if store is None:
            store = ReplayStore(
                settings.db_path,
                busy_timeout_seconds=options.busy_timeout_seconds,
            )
        return cls(
            store,
            extractor_factory,
            replays_folder=settings.replays.folder,
            user_battle_tag=settings.user.battle_tag,
            recursive=settings.replays.recursive,
            options=options,
        )

    @property
    def store(self) -> ReplayStore:
        return self._store

    @property
    def tracker(self) -> CacheStateTracker:
        return self._tracker

    @property
    def resolver(self) -> IdentityResolver:
        return self._resolver

    @property
    def parallelism(self) -> int:
        """Parallélisme effectif de l'étape d'insertion."""
        if self._options.parallelism:
            return self._options.parallelism
        return compute_parallelism()

    # =========================================================================
    # API publique
    # =========================================================================

    async def initialize_cache(
        self,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """Initialise le cache au démarrage.

        Sans effet si déjà appelé dans ce processus.

        Args:
            progress_callback: Callback (phase, courant, total).

        Returns:
            SyncResult (mode "noop" si déjà initialisé).
        """
        if self._initialized:
            logger.debug("Cache déjà initialisé dans ce processus")
            return SyncResult()

        result = await self._run_sync(progress_callback=progress_callback)
        if not result.errors:
            self._initialized = True
        return result

    async def sync_from_disk(
        self,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """Synchronise le cache avec le dossier de replays.

        Retourne immédiatement si la dernière validation est récente.
        """
        return await self._run_sync(progress_callback=progress_callback)

    async def save_single_replay(
        self,
        path: Path | str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """Ajoute un replay au cache s'il n'y est pas déjà.

        Ne consulte ni ne modifie les marqueurs du cache.

        Args:
            path: Chemin du fichier .SC2Replay.
            progress_callback: Callback (phase, courant, total).
        """
        result = SyncResult(mode="single", started_at=datetime.now(timezone.utc))
        start_time = time.time()
        path_str = str(Path(path).expanduser().resolve())

        async with self._sync_lock:
            try:
                if await asyncio.to_thread(self._store.is_replay_cached, path_str):
                    logger.debug(f"Replay déjà en cache: {path_str}")
                    result.replays_skipped = 1
                else:
                    result.files_discovered = 1
                    result.files_missing = 1
                    await self._run_pipeline([path_str], result, progress_callback)
            except Exception as e:
                logger.error(f"Erreur save_single_replay ({path_str}): {e}")
                result.errors.append(str(e))

        return self._finish(result, start_time)

    # =========================================================================
    # Algorithme de synchronisation
    # =========================================================================

    def _require_configuration(self) -> None:
        if not self._user_battle_tag:
            raise ConfigurationError("user.battleTag", "aucun battle-tag de référence configuré")

    async def _run_sync(
        self,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        result = SyncResult(started_at=datetime.now(timezone.utc))
        start_time = time.time()

        async with self._sync_lock:
            try:
                self._require_configuration()

                if not self._config_checked:
                    config_hash = compute_config_hash(self._replays_folder, self._recursive)
                    invalidated = await asyncio.to_thread(self._tracker.apply_config, config_hash)
                    self._config_checked = True
                    if invalidated:
                        result.warnings.append("Configuration modifiée: cache revalidé entièrement")

                tracker = self._tracker
                if not tracker.state.is_initialized:
                    await self._full_sync(result, progress_callback)
                elif not tracker.is_validation_due(self._options.validation_interval):
                    logger.debug("Validation récente, synchronisation ignorée")
                else:
                    await self._incremental_sync(result, progress_callback)

            except ConfigurationError as e:
                logger.error(f"Initialisation du cache impossible: {e}")
                result.errors.append(str(e))
            except Exception as e:
                logger.error(f"Erreur sync: {e}")
                result.errors.append(str(e))

        return self._finish(result, start_time)

    async def _enumerate(self) -> list[str]:
        files = await asyncio.to_thread(
            list_replay_files, self._replays_folder, recursive=self._recursive
        )
        if not files and self._replays_folder and not Path(self._replays_folder).is_dir():
            logger.warning(f"Dossier de replays introuvable: {self._replays_folder}")
        return [str(p) for p in files]

    async def _full_sync(
        self, result: SyncResult, progress_callback: ProgressCallback | None
    ) -> None:
        result.mode = "full"
        paths = await self._enumerate()
        result.files_discovered = len(paths)
        result.files_missing = len(paths)
        logger.info(f"Premier run: {len(paths)} replays trouvés sur le disque")

        await self._run_pipeline(paths, result, progress_callback)
        await asyncio.to_thread(self._tracker.mark_initialized)

    async def _incremental_sync(
        self, result: SyncResult, progress_callback: ProgressCallback | None
    ) -> None:
        result.mode = "incremental"
        paths = await self._enumerate()
        missing = await asyncio.to_thread(self._store.get_missing_files, paths)
        result.files_discovered = len(paths)
        result.files_missing = len(missing)
        logger.info(f"Validation: {len(missing)}/{len(paths)} replays absents du cache")

        await self._run_pipeline(missing, result, progress_callback)
        await asyncio.to_thread(self._tracker.mark_validated)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run_pipeline(
        self,
        paths: Sequence[str],
        result: SyncResult,
        progress_callback: ProgressCallback | None,
    ) -> None:
        """Étape 1 (extraction) puis étape 2 (insertion parallèle)."""
        if not paths:
            return

        outcomes = await extract_metadata_batch(
            paths,
            self._pool,
            parallelism=self._options.extraction_parallelism,
            timeout_seconds=self._options.decode_timeout_seconds,
            progress_callback=progress_callback,
        )

        records: list[ReplayMetadata] = []
        for outcome in outcomes:
            if outcome.metadata is None:
                result.replays_failed += 1
                result.warnings.append(f"{outcome.path}: {outcome.error}")
            else:
                records.append(outcome.metadata)

        await self._insert_batch(records, result, progress_callback)

    def _store_one(self, metadata: ReplayMetadata) -> tuple[int | None, int]:
        """Résout les deux joueurs puis insère le replay (thread worker)."""
        try:
            p1 = self._resolver.resolve(metadata.player1.nickname, metadata.player1.toon)
            p2 = self._resolver.resolve(metadata.player2.nickname, metadata.player2.toon)
            return self._store.insert_replay(metadata, p1.id, p2.id)
        except Exception as e:
            raise StoreWriteError(str(metadata.file_path), str(e)) from e

    async def _insert_batch(
        self,
        records: list[ReplayMetadata],
        result: SyncResult,
        progress_callback: ProgressCallback | None,
    ) -> None:
        total = len(records)
        if total == 0:
            return

        parallelism = self.parallelism
        semaphore = asyncio.Semaphore(parallelism)
        log_every = max(1, self._options.progress_log_every)
        started = time.monotonic()
        completed = 0
        next_milestone = 25
        logger.info(f"Insertion de {total} replays (parallélisme={parallelism})")

        async def _worker(metadata: ReplayMetadata) -> None:
            nonlocal completed, next_milestone
            async with semaphore:
                try:
                    replay_id, entries = await asyncio.to_thread(self._store_one, metadata)
                except StoreWriteError as e:
                    logger.warning(str(e))
                    result.replays_failed += 1
                    result.warnings.append(str(e))
                else:
                    if replay_id is None:
                        result.replays_skipped += 1
                    else:
                        result.replays_inserted += 1
                        result.build_order_entries_inserted += entries

            completed += 1
            if progress_callback:
                progress_callback(PHASE_STORE, completed, total)
            if completed % log_every == 0 or completed == total:
                self._log_throughput(completed, total, started)
            percent = completed * 100 // total
            while next_milestone <= 100 and percent >= next_milestone:
                logger.info(f"Insertion {next_milestone}% ({completed}/{total})")
                next_milestone += 25

        await asyncio.gather(*(_worker(m) for m in records))

    @staticmethod
    def _log_throughput(completed: int, total: int, started: float) -> None:
        elapsed = max(time.monotonic() - started, 1e-6)
        rate = completed / elapsed
        remaining = total - completed
        eta = remaining / rate if rate > 0 else 0.0
        logger.info(
            f"Progression: {completed}/{total} replays ({rate:.1f} replays/s, ETA {eta:.0f}s)"
        )

    @staticmethod
    def _finish(result: SyncResult, start_time: float) -> SyncResult:
        result.finished_at = datetime.now(timezone.utc)
        result.duration_seconds = time.time() - start_time
        if result.mode != "noop" or result.errors:
            logger.info(f"Sync [{result.mode}] {result.to_message()}")
        return result

    def close(self) -> None:
        """Ferme la connexion DuckDB."""
        with contextlib.suppress(Exception):
            self._store.close()
