"""Étape 1 : extraction des métadonnées de replays.

Le décodage binaire des replays est fourni par un collaborateur externe
(`MetadataExtractor`). Ce module :
- exécute les extractions sur des threads dédiés (`ExtractionWorkers`),
  distincts de l'executor par défaut utilisé par les écritures DuckDB
- garde un extracteur par thread (`ExtractorPool`), les décodeurs
  n'étant ni partagés ni déplacés entre threads
- applique un timeout par fichier ; le thread d'un décodage bloqué est
  abandonné et remplacé
- capture les échecs par fichier (metadata = None) sans interrompre le lot
- conserve l'ordre des fichiers en entrée
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from sc2reveal.data.sync.models import (
    PHASE_EXTRACT,
    ExtractionOutcome,
    ProgressCallback,
    ReplayMetadata,
)

logger = logging.getLogger(__name__)

# Fréquence des logs de progression de l'extraction (en fichiers)
EXTRACT_LOG_EVERY = 100

EXTRACT_THREAD_PREFIX = "sc2reveal-extract"


@runtime_checkable
class MetadataExtractor(Protocol):
    """Décodeur de replay (boîte noire)."""

    def extract(self, path: Path) -> ReplayMetadata | None:
        """Retourne les métadonnées du replay, ou None s'il est illisible."""
        ...


ExtractorFactory = Callable[[], MetadataExtractor]


class ExtractorPool:
    """Extracteurs rattachés à leur thread.

    Chaque thread obtient sa propre instance au premier appel de `get()`
    et la réutilise ensuite ; une instance ne change jamais de thread.
    """

    def __init__(self, factory: ExtractorFactory) -> None:
        self._factory = factory
        self._local = threading.local()
        self._lock = threading.Lock()
        self._created = 0

    @property
    def created(self) -> int:
        """Nombre d'extracteurs instanciés."""
        return self._created

    def get(self) -> MetadataExtractor:
        """Extracteur du thread courant (créé au premier appel)."""
        extractor = getattr(self._local, "extractor", None)
        if extractor is None:
            extractor = self._factory()
            self._local.extractor = extractor
            with self._lock:
                self._created += 1
            logger.debug(f"Extracteur créé pour le thread {threading.current_thread().name}")
        return extractor


class ExtractionWorkers:
    """Threads dédiés à l'étape 1.

    Un décodage qui dépasse son timeout ne peut pas être interrompu : son
    thread est laissé à l'ancien executor, et les fichiers suivants partent
    sur un executor neuf de même taille.
    """

    def __init__(self, size: int) -> None:
        self._size = max(1, size)
        self._executor = self._new_executor()
        self._abandoned = 0

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._size, thread_name_prefix=EXTRACT_THREAD_PREFIX)

    @property
    def abandoned(self) -> int:
        """Nombre de threads abandonnés sur timeout."""
        return self._abandoned

    def run(self, fn: Callable[..., Any], *args: Any) -> asyncio.Future:
        """Soumet `fn(*args)` à un thread dédié."""
        return asyncio.get_running_loop().run_in_executor(self._executor, fn, *args)

    def abandon_stuck(self) -> None:
        """Remplace l'executor courant après un décodage bloqué."""
        self._executor.shutdown(wait=False)
        self._executor = self._new_executor()
        self._abandoned += 1

    def close(self) -> None:
        """Libère les threads sans attendre les décodages bloqués."""
        self._executor.shutdown(wait=False)


def _extract_sync(pool: ExtractorPool, path: str) -> ReplayMetadata | None:
    return pool.get().extract(Path(path))


async def _extract_one(
    pool: ExtractorPool,
    workers: ExtractionWorkers,
    path: str,
    timeout_seconds: float,
) -> ExtractionOutcome:
    try:
        metadata = await asyncio.wait_for(
            workers.run(_extract_sync, pool, path),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        workers.abandon_stuck()
        logger.warning(f"Extraction trop longue (> {timeout_seconds:g}s), ignoré: {path}")
        return ExtractionOutcome(path=path, error=f"timeout après {timeout_seconds:g}s")
    except Exception as e:
        logger.warning(f"Extraction échouée pour {path}: {e}")
        return ExtractionOutcome(path=path, error=str(e))

    if metadata is None:
        logger.warning(f"Replay illisible, ignoré: {path}")
        return ExtractionOutcome(path=path, error="métadonnées indisponibles")

    if str(metadata.file_path) != path:
        metadata = dataclasses.replace(metadata, file_path=path)
    return ExtractionOutcome(path=path, metadata=metadata)


async def extract_metadata_batch(
    paths: Sequence[str],
    pool: ExtractorPool,
    *,
    parallelism: int = 1,
    timeout_seconds: float = 30.0,
    progress_callback: ProgressCallback | None = None,
) -> list[ExtractionOutcome]:
    """Extrait les métadonnées d'une liste de fichiers.

    Args:
        paths: Chemins absolus des replays.
        pool: Extracteurs par thread.
        parallelism: Extractions simultanées (1 = séquentiel).
        timeout_seconds: Timeout par fichier.
        progress_callback: Callback (phase, courant, total).

    Returns:
        Un ExtractionOutcome par fichier, dans l'ordre d'entrée.
    """
    total = len(paths)
    if total == 0:
        return []

    parallelism = max(1, parallelism)
    workers = ExtractionWorkers(parallelism)
    semaphore = asyncio.Semaphore(parallelism)
    completed = 0
    failed = 0
    next_milestone = 25

    async def _run(path: str) -> ExtractionOutcome:
        nonlocal completed, failed, next_milestone
        async with semaphore:
            outcome = await _extract_one(pool, workers, path, timeout_seconds)

        completed += 1
        if not outcome.ok:
            failed += 1
        if progress_callback:
            progress_callback(PHASE_EXTRACT, completed, total)
        if completed % EXTRACT_LOG_EVERY == 0:
            logger.debug(f"Extraction: {completed}/{total} fichiers")
        percent = completed * 100 // total
        while next_milestone <= 100 and percent >= next_milestone:
            logger.info(f"Extraction {next_milestone}% ({completed}/{total})")
            next_milestone += 25
        return outcome

    try:
        outcomes = await asyncio.gather(*(_run(str(p)) for p in paths))
    finally:
        workers.close()

    if workers.abandoned:
        logger.warning(f"{workers.abandoned} décodage(s) bloqué(s) abandonné(s)")
    logger.info(f"Extraction terminée: {total - failed}/{total} replays lisibles")
    return list(outcomes)
