"""Modèles de données pour le module de synchronisation.

Contient les dataclasses pour :
- Options et résultats de synchronisation (SyncOptions, SyncResult)
- Métadonnées extraites d'un replay (ReplayMetadata, PlayerSlot, BuildOrderEntry)
- Lignes DuckDB (PlayerIdentity, ReplayRecord, CacheState)
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sc2reveal.config import AppSettings

# Callback de progression : (phase, courant, total)
ProgressCallback = Callable[[str, int, int], None]

# Phases rapportées au callback de progression
PHASE_EXTRACT = "extract"
PHASE_STORE = "store"

# Carte utilisée quand le replay n'en déclare pas
UNKNOWN_MAP = "Unknown"

# Longueur du hash d'identité d'un replay (caractères hexadécimaux)
REPLAY_HASH_LENGTH = 16


def compute_replay_hash(file_path: str | Path, game_date: datetime) -> str:
    """Calcule le hash déterministe d'un replay.

    SHA-256 de "<nom de fichier>_<date ISO-8601>", tronqué à 16 caractères.
    Informationnel uniquement : l'unicité est portée par le chemin.
    """
    payload = f"{Path(file_path).name}_{game_date.isoformat()}"
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return digest[:REPLAY_HASH_LENGTH].upper()


# =============================================================================
# Métadonnées extraites (entrée du pipeline)
# =============================================================================


@dataclass(frozen=True)
class PlayerSlot:
    """Un joueur tel que lu dans un replay."""

    nickname: str
    toon: str | None = None
    race: str = ""


@dataclass(frozen=True)
class BuildOrderEntry:
    """Une étape de build order.

    Attributes:
        player_slot: Identifiant brut du joueur dans le replay (toon handle).
        time_seconds: Horodatage de jeu en secondes.
        kind: unit, building ou upgrade.
        name: Nom de l'unité / du bâtiment / de l'amélioration.
    """

    player_slot: str
    time_seconds: int
    kind: str
    name: str


@dataclass
class ReplayMetadata:
    """Métadonnées d'un replay produites par l'extracteur."""

    file_path: str
    player1: PlayerSlot
    player2: PlayerSlot
    game_date: datetime
    map_name: str = UNKNOWN_MAP
    client_version: str | None = None
    build_order: list[BuildOrderEntry] = field(default_factory=list)

    @property
    def replay_hash(self) -> str:
        """Hash déterministe (nom de fichier + date)."""
        return compute_replay_hash(self.file_path, self.game_date)


@dataclass
class ExtractionOutcome:
    """Résultat de l'extraction d'un fichier (metadata None = échec)."""

    path: str
    metadata: ReplayMetadata | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.metadata is not None


# =============================================================================
# Lignes DuckDB
# =============================================================================


@dataclass
class PlayerIdentity:
    """Ligne de la table players."""

    id: int
    nickname: str
    battle_tag: str
    toon: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ReplayRecord:
    """Ligne de la table replays."""

    id: int
    replay_hash: str
    player1_id: int
    player2_id: int
    map_name: str
    player1_race: str
    player2_race: str
    game_date: datetime
    file_path: str
    player1_toon: str | None = None
    player2_toon: str | None = None
    client_version: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class CacheState:
    """Ligne unique de la table cache_state.

    Attributes:
        config_hash: Hash de la configuration surveillée (dossier + récursivité).
        cache_initialized_at: Marqueur "cache initialisé" (None = premier run).
        last_validated_at: Dernière comparaison disque / cache.
    """

    config_hash: str | None = None
    cache_initialized_at: datetime | None = None
    last_validated_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_initialized(self) -> bool:
        return self.cache_initialized_at is not None

    def is_validation_due(self, now: datetime, interval: timedelta) -> bool:
        """Vrai si la dernière validation est plus vieille que l'intervalle."""
        if self.last_validated_at is None:
            return True
        return now - self.last_validated_at >= interval


# =============================================================================
# Options et résultats de synchronisation
# =============================================================================


@dataclass
class SyncOptions:
    """Options de synchronisation.

    Attributes:
        parallelism: Insertions en parallèle (None = calcul selon les cœurs).
        extraction_parallelism: Extractions en parallèle (1 = séquentiel).
        decode_timeout_seconds: Timeout d'extraction par fichier.
        validation_interval_minutes: Intervalle minimal entre deux validations disque.
        busy_timeout_seconds: Durée maximale de retry sur conflit de transaction.
        progress_log_every: Fréquence des logs de débit/ETA (en fichiers).
    """

    parallelism: int | None = None
    extraction_parallelism: int = 1
    decode_timeout_seconds: float = 30.0
    validation_interval_minutes: int = 60
    busy_timeout_seconds: float = 5.0
    progress_log_every: int = 50

    @property
    def validation_interval(self) -> timedelta:
        return timedelta(minutes=self.validation_interval_minutes)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> SyncOptions:
        """Construit les options depuis la configuration applicative."""
        cache = settings.cache
        return cls(
            parallelism=cache.insert_parallelism,
            extraction_parallelism=cache.extraction_parallelism,
            decode_timeout_seconds=cache.decode_timeout_seconds,
            validation_interval_minutes=cache.validation_interval_minutes,
            busy_timeout_seconds=cache.busy_timeout_seconds,
            progress_log_every=cache.progress_log_every,
        )


@dataclass
class SyncResult:
    """Résultat d'une synchronisation.

    Contient les compteurs et erreurs pour le rapport final.
    `mode` vaut full, incremental, single ou noop.
    """

    mode: str = "noop"
    files_discovered: int = 0
    files_missing: int = 0
    replays_inserted: int = 0
    replays_skipped: int = 0
    replays_failed: int = 0
    build_order_entries_inserted: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        """True si la sync a réussi (même partiellement)."""
        return self.replays_inserted > 0 or len(self.errors) == 0

    @property
    def total_replays_processed(self) -> int:
        """Nombre total de replays traités (insérés + skippés + en échec)."""
        return self.replays_inserted + self.replays_skipped + self.replays_failed

    def to_message(self) -> str:
        """Message de résumé pour l'UI."""
        if not self.success:
            error_preview = ", ".join(self.errors[:2])
            return f"❌ Sync échouée: {error_preview}"

        parts = []
        if self.replays_inserted > 0:
            parts.append(f"{self.replays_inserted} nouveaux replays")
        if self.replays_failed > 0:
            parts.append(f"{self.replays_failed} illisibles")
        if self.build_order_entries_inserted > 0:
            parts.append(f"{self.build_order_entries_inserted} étapes de build")

        if not parts:
            parts.append("Déjà à jour")

        duration_str = ""
        if self.duration_seconds > 0:
            duration_str = f" ({self.duration_seconds:.1f}s)"

        return f"✅ {', '.join(parts)}{duration_str}"

    def to_dict(self) -> dict[str, Any]:
        """Convertit en dict pour sérialisation JSON."""
        return {
            "success": self.success,
            "mode": self.mode,
            "files_discovered": self.files_discovered,
            "files_missing": self.files_missing,
            "replays_inserted": self.replays_inserted,
            "replays_skipped": self.replays_skipped,
            "replays_failed": self.replays_failed,
            "build_order_entries_inserted": self.build_order_entries_inserted,
            "errors": self.errors,
            "warnings": self.warnings,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
