"""
Requêtes de lecture sur le cache de replays.
(Read-only queries on the replay cache)

HOW IT WORKS:
Les requêtes lisent replays / players / build_order_entries via un curseur
dédié du ReplayStore et retournent des DataFrames Polars (transfert Arrow).
Les résultats sont orientés du point de vue du joueur de référence
("you" vs "opponent"), l'ordre player1/player2 en base étant celui de
première apparition dans le replay.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import polars as pl

from sc2reveal.data.repositories._arrow_bridge import result_to_polars
from sc2reveal.data.sync.models import PlayerIdentity, ReplayRecord
from sc2reveal.data.sync.store import ReplayStore
from sc2reveal.utils.toon import normalize_battle_tag, toon_handle_last_bit

logger = logging.getLogger(__name__)


def _toon_match(column: str, toon: str) -> tuple[str, list[Any]]:
    """Condition SQL tolérante sur un toon handle.

    Égalité exacte, ou même terminaison royaume-id ("1-S2-1-123" ≡ "S2-1-123").
    """
    last_bit = toon_handle_last_bit(toon)
    suffix = f"-{last_bit}" if "-" in last_bit else None
    return f"({column} = ? OR ends_with({column}, ?))", [toon, suffix]


class ReplayQueries:
    """Surface de requêtes (lecture seule) du cache de replays."""

    def __init__(self, store: ReplayStore) -> None:
        self._store = store

    # =========================================================================
    # Joueurs
    # =========================================================================

    def find_player(
        self,
        *,
        battle_tag: str | None = None,
        toon: str | None = None,
    ) -> PlayerIdentity | None:
        """Retrouve une identité par toon handle puis par battle-tag.

        Args:
            battle_tag: Battle-tag ou pseudo ("Foo#42", "Foo_42").
            toon: Toon handle exact.

        Returns:
            Identité ou None.
        """
        if toon:
            found = self._store.find_player_by_toon(toon.strip())
            if found is not None:
                return found
        if battle_tag:
            return self._store.find_player_by_battle_tag(normalize_battle_tag(battle_tag))
        return None

    # =========================================================================
    # Historique
    # =========================================================================

    def get_match_history(
        self,
        player_id: int,
        opponent_id: int,
        limit: int = 10,
    ) -> pl.DataFrame:
        """Parties entre deux identités, les plus récentes d'abord.

        Args:
            player_id: Identité de référence ("you").
            opponent_id: Identité adverse.
            limit: Nombre maximum de parties.

        Returns:
            DataFrame (replay_id, game_date, map_name, your_race,
            opponent_race, opponent_battle_tag, file_path, replay_hash).
        """
        with self._store.cursor() as cur:
            result = cur.execute(
                """
                SELECT
                    r.id AS replay_id,
                    r.game_date,
                    r.map_name,
                    CASE WHEN r.player1_id = $you THEN r.player1_race ELSE r.player2_race END
                        AS your_race,
                    CASE WHEN r.player1_id = $you THEN r.player2_race ELSE r.player1_race END
                        AS opponent_race,
                    CASE WHEN r.player1_id = $you THEN p2.battle_tag ELSE p1.battle_tag END
                        AS opponent_battle_tag,
                    r.file_path,
                    r.replay_hash
                FROM replays r
                JOIN players p1 ON p1.id = r.player1_id
                JOIN players p2 ON p2.id = r.player2_id
                WHERE (r.player1_id = $you AND r.player2_id = $opp)
                   OR (r.player1_id = $opp AND r.player2_id = $you)
                ORDER BY r.game_date DESC, r.id DESC
                LIMIT $limit
                """,
                {"you": player_id, "opp": opponent_id, "limit": limit},
            )
            return result_to_polars(result)

    def get_last_build_order(self, player_id: int, limit: int = 20) -> pl.DataFrame:
        """Build order de l'identité dans son replay le plus récent qui en contient un.

        Le slot du joueur dans chaque replay est son toon handle brut
        (colonnes player1_toon / player2_toon).

        Returns:
            DataFrame (replay_id, game_date, player_slot, time_seconds, kind, name),
            trié par temps de jeu.
        """
        with self._store.cursor() as cur:
            result = cur.execute(
                """
                WITH candidates AS (
                    SELECT
                        r.id,
                        r.game_date,
                        CASE WHEN r.player1_id = $pid THEN r.player1_toon
                             ELSE r.player2_toon END AS slot
                    FROM replays r
                    WHERE r.player1_id = $pid OR r.player2_id = $pid
                ),
                latest AS (
                    SELECT c.id, c.game_date, c.slot
                    FROM candidates c
                    WHERE EXISTS (
                        SELECT 1 FROM build_order_entries b
                        WHERE b.replay_id = c.id AND b.player_slot = c.slot
                    )
                    ORDER BY c.game_date DESC, c.id DESC
                    LIMIT 1
                )
                SELECT
                    b.replay_id,
                    l.game_date,
                    b.player_slot,
                    b.time_seconds,
                    b.kind,
                    b.name
                FROM build_order_entries b
                JOIN latest l ON b.replay_id = l.id AND b.player_slot = l.slot
                ORDER BY b.time_seconds, b.id
                LIMIT $limit
                """,
                {"pid": player_id, "limit": limit},
            )
            return result_to_polars(result)

    def get_games_by_toon(
        self,
        your_toon: str,
        opponent_toon: str,
        limit: int = 100,
    ) -> pl.DataFrame:
        """Parties entre deux toon handles bruts (tolère la dérive de région).

        Returns:
            DataFrame (replay_id, game_date, map_name, your_battle_tag,
            your_race, opponent_battle_tag, opponent_race, file_path).
        """
        you_as_p1, you_p1_params = _toon_match("r.player1_toon", your_toon)
        opp_as_p2, opp_p2_params = _toon_match("r.player2_toon", opponent_toon)
        you_as_p2, you_p2_params = _toon_match("r.player2_toon", your_toon)
        opp_as_p1, opp_p1_params = _toon_match("r.player1_toon", opponent_toon)

        sql = f"""
            SELECT * FROM (
                SELECT
                    r.id AS replay_id, r.game_date, r.map_name,
                    p1.battle_tag AS your_battle_tag, r.player1_race AS your_race,
                    p2.battle_tag AS opponent_battle_tag, r.player2_race AS opponent_race,
                    r.file_path
                FROM replays r
                JOIN players p1 ON p1.id = r.player1_id
                JOIN players p2 ON p2.id = r.player2_id
                WHERE {you_as_p1} AND {opp_as_p2}
                UNION ALL
                SELECT
                    r.id AS replay_id, r.game_date, r.map_name,
                    p2.battle_tag AS your_battle_tag, r.player2_race AS your_race,
                    p1.battle_tag AS opponent_battle_tag, r.player1_race AS opponent_race,
                    r.file_path
                FROM replays r
                JOIN players p1 ON p1.id = r.player1_id
                JOIN players p2 ON p2.id = r.player2_id
                WHERE {you_as_p2} AND {opp_as_p1}
            ) AS games
            ORDER BY game_date DESC, replay_id DESC
            LIMIT ?
        """
        params = you_p1_params + opp_p2_params + you_p2_params + opp_p1_params + [limit]
        with self._store.cursor() as cur:
            return result_to_polars(cur.execute(sql, params))

    # =========================================================================
    # Cache
    # =========================================================================

    def get_cache_stats(self) -> dict[str, Any]:
        return self._store.get_cache_stats()

    def get_replay_by_path(self, file_path: str | Path) -> ReplayRecord | None:
        return self._store.get_replay_by_path(file_path)

    def get_replays_by_hash(self, replay_hash: str) -> list[ReplayRecord]:
        return self._store.get_replays_by_hash(replay_hash)
