"""Tests pour sc2reveal/data/sync/migrations.py.

Couvre :
  - Helpers utilitaires (get_table_columns, table_exists, index_exists)
  - Application ordonnée et idempotente des migrations
"""

from __future__ import annotations

import duckdb
import pytest

from sc2reveal.data.sync.migrations import (
    MIGRATIONS,
    get_applied_versions,
    get_schema_version,
    get_table_columns,
    index_exists,
    run_migrations,
    table_exists,
)


@pytest.fixture
def conn():
    """Connexion DuckDB in-memory pour les tests."""
    c = duckdb.connect(":memory:")
    yield c
    c.close()


# ─────────────────────────────────────────────────────────────────────────
# Helpers utilitaires
# ─────────────────────────────────────────────────────────────────────────


class TestHelpers:
    """Tests des fonctions utilitaires de base."""

    def test_get_table_columns_empty_when_no_table(self, conn):
        assert get_table_columns(conn, "nonexistent_table") == set()

    def test_get_table_columns_returns_column_names(self, conn):
        conn.execute("CREATE TABLE t1 (a INTEGER, b VARCHAR)")
        assert get_table_columns(conn, "t1") == {"a", "b"}

    def test_table_exists(self, conn):
        assert table_exists(conn, "t1") is False
        conn.execute("CREATE TABLE t1 (id INTEGER)")
        assert table_exists(conn, "t1") is True

    def test_index_exists_false_when_absent(self, conn):
        assert index_exists(conn, "idx_nope") is False


# ─────────────────────────────────────────────────────────────────────────
# Migrations
# ─────────────────────────────────────────────────────────────────────────


class TestRunMigrations:
    """Application des migrations du cache."""

    def test_versions_are_ordered_and_unique(self):
        versions = [v for v, _, _ in MIGRATIONS]
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)

    def test_fresh_database_gets_full_schema(self, conn):
        applied = run_migrations(conn)

        assert applied == [v for v, _, _ in MIGRATIONS]
        for table in ("players", "replays", "build_order_entries", "cache_state"):
            assert table_exists(conn, table)
        assert index_exists(conn, "idx_replays_hash")
        assert get_schema_version(conn) == MIGRATIONS[-1][0]

    def test_second_run_is_noop(self, conn):
        run_migrations(conn)
        assert run_migrations(conn) == []
        assert get_applied_versions(conn) == {v for v, _, _ in MIGRATIONS}

    def test_replays_columns(self, conn):
        run_migrations(conn)
        cols = get_table_columns(conn, "replays")
        assert {
            "replay_hash",
            "player1_id",
            "player2_id",
            "player1_toon",
            "player2_toon",
            "map_name",
            "game_date",
            "file_path",
            "client_version",
        } <= cols

    def test_file_path_is_unique(self, conn):
        run_migrations(conn)
        conn.execute("INSERT INTO players (nickname, battle_tag, toon) VALUES ('A', 'A#1', 't1')")
        conn.execute("INSERT INTO players (nickname, battle_tag, toon) VALUES ('B', 'B#1', 't2')")
        insert = (
            "INSERT INTO replays (replay_hash, player1_id, player2_id, map_name, game_date, "
            "file_path) VALUES ('H', 1, 2, 'M', TIMESTAMP '2024-01-01 10:00:00', '/r/a.SC2Replay')"
        )
        conn.execute(insert)
        with pytest.raises(duckdb.ConstraintException):
            conn.execute(insert)

    def test_replay_hash_is_not_unique(self, conn):
        run_migrations(conn)
        conn.execute("INSERT INTO players (nickname, battle_tag, toon) VALUES ('A', 'A#1', 't1')")
        for path in ("/a/x.SC2Replay", "/b/x.SC2Replay"):
            conn.execute(
                "INSERT INTO replays (replay_hash, player1_id, player2_id, map_name, game_date, "
                "file_path) VALUES ('SAME', 1, 1, 'M', TIMESTAMP '2024-01-01 10:00:00', ?)",
                [path],
            )
        count = conn.execute("SELECT COUNT(*) FROM replays WHERE replay_hash = 'SAME'").fetchone()
        assert count[0] == 2

    def test_players_unique_battle_tag_and_toon(self, conn):
        run_migrations(conn)
        conn.execute("INSERT INTO players (nickname, battle_tag, toon) VALUES ('A', 'A#1', 't1')")
        with pytest.raises(duckdb.ConstraintException):
            conn.execute(
                "INSERT INTO players (nickname, battle_tag, toon) VALUES ('A', 'A#1', 't2')"
            )
        with pytest.raises(duckdb.ConstraintException):
            conn.execute(
                "INSERT INTO players (nickname, battle_tag, toon) VALUES ('B', 'B#1', 't1')"
            )

    def test_cache_state_single_row(self, conn):
        run_migrations(conn)
        with pytest.raises(duckdb.ConstraintException):
            conn.execute("INSERT INTO cache_state (id) VALUES (2)")
