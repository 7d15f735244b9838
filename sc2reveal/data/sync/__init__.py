"""Module de synchronisation dossier de replays → DuckDB.

Ce module gère le pipeline de synchronisation :
Disque → Extraction des métadonnées → Identités → DuckDB

Architecture:
- extraction.py : Protocole MetadataExtractor, pool d'extracteurs, étape 1
- identity.py : Résolution des identités joueurs (verrou global)
- store.py : ReplayStore (players, replays, build_order_entries)
- cache_state.py : Marqueurs d'initialisation / validation
- engine.py : Orchestrateur ReplaySyncEngine
- models.py : Modèles de données (SyncOptions, SyncResult, ...)

Usage:
    from sc2reveal.data.sync import ReplaySyncEngine, ReplayStore

    engine = ReplaySyncEngine(
        ReplayStore("data/replays.duckdb"),
        extractor_factory=MyDecoder,
        replays_folder="D:/SC2/Replays",
        user_battle_tag="Me#1234",
    )

    result = await engine.initialize_cache()
    print(result.to_message())
"""

from sc2reveal.data.sync.cache_state import CacheStateTracker, compute_config_hash
from sc2reveal.data.sync.engine import ReplaySyncEngine, compute_parallelism
from sc2reveal.data.sync.extraction import (
    ExtractorFactory,
    ExtractorPool,
    MetadataExtractor,
    extract_metadata_batch,
)
from sc2reveal.data.sync.identity import IdentityResolver
from sc2reveal.data.sync.models import (
    BuildOrderEntry,
    CacheState,
    ExtractionOutcome,
    PlayerIdentity,
    PlayerSlot,
    ReplayMetadata,
    ReplayRecord,
    SyncOptions,
    SyncResult,
)
from sc2reveal.data.sync.store import ReplayStore

__all__ = [
    # Models
    "BuildOrderEntry",
    "CacheState",
    "ExtractionOutcome",
    "PlayerIdentity",
    "PlayerSlot",
    "ReplayMetadata",
    "ReplayRecord",
    "SyncOptions",
    "SyncResult",
    # Components
    "CacheStateTracker",
    "ExtractorFactory",
    "ExtractorPool",
    "IdentityResolver",
    "MetadataExtractor",
    "ReplayStore",
    "ReplaySyncEngine",
    # Functions
    "compute_config_hash",
    "compute_parallelism",
    "extract_metadata_batch",
]
