"""Tests pour sc2reveal/data/repositories/replay_queries.py."""

from __future__ import annotations

from datetime import datetime

import polars as pl
import pytest

from sc2reveal.data.repositories import ReplayQueries
from sc2reveal.data.sync.identity import IdentityResolver
from sc2reveal.data.sync.models import BuildOrderEntry, PlayerSlot, ReplayMetadata

ME = ("Me#1234", "2-S2-1-1000", "Protoss")
RIVAL = ("Rival#42", "2-S2-1-2000", "Zerg")
OTHER = ("Other#7", "2-S2-1-3000", "Terran")


@pytest.fixture
def queries(store):
    return ReplayQueries(store)


@pytest.fixture
def add_game(store):
    """Insère une partie (player1, player2, date) avec un build order optionnel."""
    resolver = IdentityResolver(store)

    def _add(
        name: str,
        player1: tuple[str, str, str],
        player2: tuple[str, str, str],
        game_date: datetime,
        build_order: list[BuildOrderEntry] | None = None,
    ) -> int:
        metadata = ReplayMetadata(
            file_path=f"/r/{name}.SC2Replay",
            player1=PlayerSlot(*player1),
            player2=PlayerSlot(*player2),
            game_date=game_date,
            map_name=f"Map {name}",
            build_order=build_order or [],
        )
        p1 = resolver.resolve(player1[0], player1[1])
        p2 = resolver.resolve(player2[0], player2[1])
        replay_id, _ = store.insert_replay(metadata, p1.id, p2.id)
        return replay_id

    return _add


class TestFindPlayer:
    def test_by_battle_tag_forms(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        assert queries.find_player(battle_tag="Rival_42").battle_tag == "Rival#42"
        assert queries.find_player(battle_tag="Rival#42").toon == "2-S2-1-2000"

    def test_by_toon(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        assert queries.find_player(toon="2-S2-1-1000").battle_tag == "Me#1234"

    def test_unknown(self, queries):
        assert queries.find_player(battle_tag="Nobody#1") is None
        assert queries.find_player() is None


class TestMatchHistory:
    def test_both_orientations_most_recent_first(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        add_game("g2", RIVAL, ME, datetime(2024, 3, 1))
        add_game("g3", ME, OTHER, datetime(2024, 4, 1))
        me = queries.find_player(battle_tag="Me#1234")
        rival = queries.find_player(battle_tag="Rival#42")

        df = queries.get_match_history(me.id, rival.id)

        assert isinstance(df, pl.DataFrame)
        assert df["map_name"].to_list() == ["Map g2", "Map g1"]
        assert df["your_race"].to_list() == ["Protoss", "Protoss"]
        assert df["opponent_race"].to_list() == ["Zerg", "Zerg"]
        assert df["opponent_battle_tag"].to_list() == ["Rival#42", "Rival#42"]

    def test_limit(self, queries, add_game):
        for i in range(5):
            add_game(f"g{i}", ME, RIVAL, datetime(2024, 1, i + 1))
        me = queries.find_player(battle_tag="Me#1234")
        rival = queries.find_player(battle_tag="Rival#42")

        df = queries.get_match_history(me.id, rival.id, limit=2)

        assert df["map_name"].to_list() == ["Map g4", "Map g3"]

    def test_no_games(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        me = queries.find_player(battle_tag="Me#1234")

        assert queries.get_match_history(me.id, 9999).height == 0


class TestLastBuildOrder:
    def test_latest_replay_with_build(self, queries, add_game):
        add_game(
            "old",
            ME,
            RIVAL,
            datetime(2024, 1, 1),
            build_order=[BuildOrderEntry(ME[1], 0, "unit", "Probe")],
        )
        add_game(
            "recent",
            RIVAL,
            ME,
            datetime(2024, 2, 1),
            build_order=[
                BuildOrderEntry(ME[1], 20, "building", "Gateway"),
                BuildOrderEntry(ME[1], 12, "building", "Pylon"),
                BuildOrderEntry(RIVAL[1], 10, "building", "Hatchery"),
            ],
        )
        add_game("newest_without_build", ME, OTHER, datetime(2024, 3, 1))
        me = queries.find_player(battle_tag="Me#1234")

        df = queries.get_last_build_order(me.id)

        assert df["name"].to_list() == ["Pylon", "Gateway"]
        assert df["time_seconds"].to_list() == [12, 20]
        assert set(df["player_slot"].to_list()) == {ME[1]}

    def test_limit(self, queries, add_game):
        add_game(
            "g1",
            ME,
            RIVAL,
            datetime(2024, 1, 1),
            build_order=[BuildOrderEntry(ME[1], t, "unit", "Probe") for t in range(0, 60, 12)],
        )
        me = queries.find_player(battle_tag="Me#1234")

        assert queries.get_last_build_order(me.id, limit=3).height == 3

    def test_no_build_order(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        me = queries.find_player(battle_tag="Me#1234")

        assert queries.get_last_build_order(me.id).height == 0


class TestGamesByToon:
    def test_oriented_by_your_toon(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))
        add_game("g2", RIVAL, ME, datetime(2024, 2, 1))
        add_game("g3", ME, OTHER, datetime(2024, 3, 1))

        df = queries.get_games_by_toon(ME[1], RIVAL[1])

        assert df["map_name"].to_list() == ["Map g2", "Map g1"]
        assert df["your_battle_tag"].to_list() == ["Me#1234", "Me#1234"]
        assert df["opponent_race"].to_list() == ["Zerg", "Zerg"]

    def test_region_prefix_drift(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))

        df = queries.get_games_by_toon("1-S2-1-1000", "S2-1-2000")

        assert df.height == 1
        assert df["your_race"].to_list() == ["Protoss"]

    def test_unrelated_toons(self, queries, add_game):
        add_game("g1", ME, RIVAL, datetime(2024, 1, 1))

        assert queries.get_games_by_toon(ME[1], "2-S2-1-9999").height == 0


class TestCacheAccessors:
    def test_stats_and_lookups(self, queries, add_game):
        replay_id = add_game("g1", ME, RIVAL, datetime(2024, 1, 1))

        assert queries.get_cache_stats()["total_replays"] == 1
        record = queries.get_replay_by_path("/r/g1.SC2Replay")
        assert record.id == replay_id
        assert [r.id for r in queries.get_replays_by_hash(record.replay_hash)] == [replay_id]
