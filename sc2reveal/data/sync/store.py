"""Replay Store : persistance DuckDB du cache de replays.

Tables : players, replays, build_order_entries (+ cache_state, géré par
CacheStateTracker). Le schéma est créé/migré à la première connexion.

Une seule connexion DuckDB racine est ouverte ; chaque opération obtient
son propre curseur (`connection.cursor()`), ce qui permet des écritures
concurrentes depuis plusieurs threads. Les conflits de transaction
transitoires sont rejoués jusqu'à `busy_timeout_seconds`.

Usage:
    store = ReplayStore("data/replays.duckdb")
    missing = store.get_missing_files(paths_on_disk)
    replay_id, entries = store.insert_replay(metadata, p1.id, p2.id)
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import duckdb

from sc2reveal.data.sync.batch_insert import BUILD_ORDER_COLUMNS, batch_insert_rows
from sc2reveal.data.sync.migrations import run_migrations
from sc2reveal.data.sync.models import (
    UNKNOWN_MAP,
    BuildOrderEntry,
    PlayerIdentity,
    ReplayMetadata,
    ReplayRecord,
)
from sc2reveal.db.connection import MEMORY_DB, open_connection
from sc2reveal.db.duckdb_config import DuckDBConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Taille des lots pour les requêtes IN (...)
PATH_CHUNK_SIZE = 500

# Délai initial entre deux tentatives sur conflit de transaction
_RETRY_BASE_DELAY = 0.01

_PLAYER_COLUMNS = "id, nickname, battle_tag, toon, created_at, updated_at"

_REPLAY_COLUMNS = (
    "id, replay_hash, player1_id, player2_id, map_name, player1_race, player2_race, "
    "game_date, file_path, player1_toon, player2_toon, client_version, created_at, updated_at"
)


def to_naive_utc(value: datetime) -> datetime:
    """Convertit un datetime en UTC naïf (format stocké dans DuckDB)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime:
    """Horodatage courant en UTC naïf."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_complete_entry(entry: BuildOrderEntry) -> bool:
    """Une étape sans slot, type ou nom ne peut pas être rattachée à un joueur."""
    return all(
        str(value or "").strip() for value in (entry.player_slot, entry.kind, entry.name)
    )


def _player_from_row(row: tuple) -> PlayerIdentity:
    return PlayerIdentity(
        id=row[0],
        nickname=row[1],
        battle_tag=row[2],
        toon=row[3],
        created_at=row[4],
        updated_at=row[5],
    )


def _replay_from_row(row: tuple) -> ReplayRecord:
    return ReplayRecord(
        id=row[0],
        replay_hash=row[1],
        player1_id=row[2],
        player2_id=row[3],
        map_name=row[4],
        player1_race=row[5] or "",
        player2_race=row[6] or "",
        game_date=row[7],
        file_path=row[8],
        player1_toon=row[9],
        player2_toon=row[10],
        client_version=row[11],
        created_at=row[12],
        updated_at=row[13],
    )


class ReplayStore:
    """Accès DuckDB au cache de replays.

    Thread-safe : chaque opération travaille sur son propre curseur.
    """

    def __init__(
        self,
        db_path: Path | str = MEMORY_DB,
        *,
        config: DuckDBConfig | None = None,
        busy_timeout_seconds: float = 5.0,
    ) -> None:
        """
        Args:
            db_path: Chemin vers replays.duckdb (":memory:" pour les tests).
            config: Configuration DuckDB appliquée à la connexion.
            busy_timeout_seconds: Durée maximale de retry sur conflit.
        """
        self._db_path = str(db_path)
        self._config = config
        self._busy_timeout = busy_timeout_seconds
        self._connection: duckdb.DuckDBPyConnection | None = None
        self._conn_lock = threading.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    # =========================================================================
    # Connexion
    # =========================================================================

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Retourne la connexion racine (ouverte et migrée à la demande)."""
        with self._conn_lock:
            if self._connection is None:
                conn = open_connection(self._db_path, config=self._config)
                applied = run_migrations(conn)
                if applied:
                    logger.info(f"Schéma du cache migré (versions {applied})")
                self._connection = conn
            return self._connection

    @contextmanager
    def cursor(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Fournit un curseur dédié à l'opération courante."""
        root = self._get_connection()
        with self._conn_lock:
            cur = root.cursor()
        try:
            yield cur
        finally:
            cur.close()

    def _with_retry(self, operation: Callable[[], T]) -> T:
        """Rejoue une opération sur conflit de transaction (busy timeout)."""
        deadline = time.monotonic() + self._busy_timeout
        delay = _RETRY_BASE_DELAY
        while True:
            try:
                return operation()
            except duckdb.TransactionException as e:
                if time.monotonic() + delay > deadline:
                    raise
                logger.debug(f"Conflit de transaction, nouvel essai dans {delay:.3f}s: {e}")
                time.sleep(delay)
                delay = min(delay * 2, 0.5)

    def close(self) -> None:
        """Ferme la connexion DuckDB."""
        with self._conn_lock:
            if self._connection is not None:
                with contextlib.suppress(Exception):
                    self._connection.close()
                self._connection = None

    def __enter__(self) -> ReplayStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Joueurs
    # =========================================================================

    def _find_player(self, where: str, params: list[Any]) -> PlayerIdentity | None:
        with self.cursor() as cur:
            row = cur.execute(
                f"SELECT {_PLAYER_COLUMNS} FROM players WHERE {where} ORDER BY id LIMIT 1",
                params,
            ).fetchone()
        return _player_from_row(row) if row else None

    def get_player(self, player_id: int) -> PlayerIdentity | None:
        return self._find_player("id = ?", [player_id])

    def find_player_by_toon(self, toon: str) -> PlayerIdentity | None:
        """Recherche exacte par toon handle."""
        return self._find_player("toon = ?", [toon])

    def find_player_by_battle_tag(self, battle_tag: str) -> PlayerIdentity | None:
        """Recherche exacte par battle-tag normalisé."""
        return self._find_player("battle_tag = ?", [battle_tag])

    def find_player_by_toon_suffix(self, suffix: str) -> PlayerIdentity | None:
        """Recherche le premier joueur dont le toon se termine par `suffix`."""
        if not suffix:
            return None
        return self._find_player("ends_with(toon, ?)", [suffix])

    def insert_player(self, nickname: str, battle_tag: str, toon: str) -> PlayerIdentity:
        """Crée une identité joueur.

        Raises:
            duckdb.ConstraintException: Si le battle-tag ou le toon existe déjà.
        """

        def _insert() -> PlayerIdentity:
            now = utc_now()
            with self.cursor() as cur:
                row = cur.execute(
                    f"""INSERT INTO players (nickname, battle_tag, toon, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        RETURNING {_PLAYER_COLUMNS}""",
                    [nickname, battle_tag, toon, now, now],
                ).fetchone()
            return _player_from_row(row)

        return self._with_retry(_insert)

    def get_player_count(self) -> int:
        with self.cursor() as cur:
            row = cur.execute("SELECT COUNT(*) FROM players").fetchone()
        return int(row[0]) if row else 0

    # =========================================================================
    # Replays
    # =========================================================================

    def is_replay_cached(self, file_path: str | Path) -> bool:
        """Vrai si un replay est déjà enregistré pour ce chemin."""
        with self.cursor() as cur:
            row = cur.execute(
                "SELECT 1 FROM replays WHERE file_path = ? LIMIT 1", [str(file_path)]
            ).fetchone()
        return row is not None

    def get_cached_paths(self) -> set[str]:
        """Retourne l'ensemble des chemins enregistrés."""
        with self.cursor() as cur:
            rows = cur.execute("SELECT file_path FROM replays").fetchall()
        return {r[0] for r in rows}

    def get_missing_files(self, paths: Iterable[str | Path]) -> list[str]:
        """Retourne les chemins absents du cache, dans l'ordre d'entrée.

        Comparaison exacte des chemins (sensible à la casse), par lots.
        """
        candidates = list(dict.fromkeys(str(p) for p in paths))
        if not candidates:
            return []

        cached: set[str] = set()
        with self.cursor() as cur:
            for start in range(0, len(candidates), PATH_CHUNK_SIZE):
                chunk = candidates[start : start + PATH_CHUNK_SIZE]
                placeholders = ", ".join(["?"] * len(chunk))
                rows = cur.execute(
                    f"SELECT file_path FROM replays WHERE file_path IN ({placeholders})",
                    chunk,
                ).fetchall()
                cached.update(r[0] for r in rows)

        return [p for p in candidates if p not in cached]

    def insert_replay(
        self,
        metadata: ReplayMetadata,
        player1_id: int,
        player2_id: int,
    ) -> tuple[int | None, int]:
        """Insère un replay et son build order dans une transaction.

        Upsert par chemin : si le chemin est déjà enregistré, rien n'est écrit.

        Args:
            metadata: Métadonnées extraites.
            player1_id: Identité du premier joueur.
            player2_id: Identité du second joueur.

        Returns:
            (id du replay inséré ou None si déjà présent, nombre d'étapes insérées).
        """
        file_path = str(metadata.file_path)
        entries = [e for e in metadata.build_order if _is_complete_entry(e)]
        if len(entries) != len(metadata.build_order):
            logger.debug(
                f"{len(metadata.build_order) - len(entries)} étapes de build vides ignorées "
                f"({file_path})"
            )

        def _insert() -> tuple[int | None, int]:
            with self.cursor() as cur:
                existing = cur.execute(
                    "SELECT id FROM replays WHERE file_path = ?", [file_path]
                ).fetchone()
                if existing:
                    return None, 0

                now = utc_now()
                cur.begin()
                try:
                    row = cur.execute(
                        """INSERT INTO replays (
                               replay_hash, player1_id, player2_id, player1_toon, player2_toon,
                               map_name, player1_race, player2_race, game_date, file_path,
                               client_version, created_at, updated_at
                           ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                           ON CONFLICT (file_path) DO NOTHING
                           RETURNING id""",
                        [
                            metadata.replay_hash,
                            player1_id,
                            player2_id,
                            metadata.player1.toon,
                            metadata.player2.toon,
                            metadata.map_name or UNKNOWN_MAP,
                            metadata.player1.race,
                            metadata.player2.race,
                            to_naive_utc(metadata.game_date),
                            file_path,
                            metadata.client_version,
                            now,
                            now,
                        ],
                    ).fetchone()
                    if row is None:
                        cur.rollback()
                        return None, 0

                    replay_id = int(row[0])
                    inserted = batch_insert_rows(
                        cur,
                        "build_order_entries",
                        entries,
                        BUILD_ORDER_COLUMNS,
                        extra={"replay_id": replay_id},
                    )
                    cur.commit()
                except Exception:
                    with contextlib.suppress(duckdb.Error):
                        cur.rollback()
                    raise
            return replay_id, inserted

        return self._with_retry(_insert)

    def get_replay_by_path(self, file_path: str | Path) -> ReplayRecord | None:
        with self.cursor() as cur:
            row = cur.execute(
                f"SELECT {_REPLAY_COLUMNS} FROM replays WHERE file_path = ?", [str(file_path)]
            ).fetchone()
        return _replay_from_row(row) if row else None

    def get_replays_by_hash(self, replay_hash: str) -> list[ReplayRecord]:
        """Replays partageant un hash d'identité (même partie, chemins différents)."""
        with self.cursor() as cur:
            rows = cur.execute(
                f"SELECT {_REPLAY_COLUMNS} FROM replays WHERE replay_hash = ? ORDER BY id",
                [replay_hash],
            ).fetchall()
        return [_replay_from_row(r) for r in rows]

    def get_build_order(self, replay_id: int) -> list[BuildOrderEntry]:
        """Étapes de build order d'un replay, triées par temps."""
        with self.cursor() as cur:
            rows = cur.execute(
                """SELECT player_slot, time_seconds, kind, name
                   FROM build_order_entries
                   WHERE replay_id = ?
                   ORDER BY time_seconds, id""",
                [replay_id],
            ).fetchall()
        return [BuildOrderEntry(*r) for r in rows]

    def delete_replay(self, replay_id: int) -> bool:
        """Supprime un replay et ses étapes de build order (cascade).

        Jamais appelé par la synchronisation : un fichier disparu du disque
        reste dans le cache.

        Returns:
            True si un replay a été supprimé.
        """

        def _delete() -> bool:
            with self.cursor() as cur:
                cur.begin()
                try:
                    cur.execute("DELETE FROM build_order_entries WHERE replay_id = ?", [replay_id])
                    row = cur.execute(
                        "DELETE FROM replays WHERE id = ? RETURNING id", [replay_id]
                    ).fetchone()
                    cur.commit()
                except Exception:
                    with contextlib.suppress(duckdb.Error):
                        cur.rollback()
                    raise
            return row is not None

        return self._with_retry(_delete)

    def get_replay_count(self) -> int:
        with self.cursor() as cur:
            row = cur.execute("SELECT COUNT(*) FROM replays").fetchone()
        return int(row[0]) if row else 0

    def get_cache_stats(self) -> dict[str, Any]:
        """Statistiques du cache pour l'affichage."""
        with self.cursor() as cur:
            row = cur.execute(
                """SELECT
                       (SELECT COUNT(*) FROM replays),
                       (SELECT COUNT(*) FROM players),
                       (SELECT COUNT(DISTINCT replay_id) FROM build_order_entries),
                       (SELECT COUNT(*) FROM build_order_entries),
                       (SELECT MIN(game_date) FROM replays),
                       (SELECT MAX(game_date) FROM replays)"""
            ).fetchone()
        return {
            "total_replays": int(row[0]),
            "total_players": int(row[1]),
            "replays_with_build_order": int(row[2]),
            "build_order_entries": int(row[3]),
            "oldest_game": row[4],
            "newest_game": row[5],
        }
