"""Tests pour les modèles de synchronisation et le calcul du parallélisme."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from sc2reveal.data.sync.engine import compute_parallelism
from sc2reveal.data.sync.models import (
    CacheState,
    ExtractionOutcome,
    PlayerSlot,
    ReplayMetadata,
    SyncOptions,
    SyncResult,
    compute_replay_hash,
)


class TestComputeReplayHash:
    def test_deterministic(self):
        date = datetime(2024, 5, 1, 20, 0, 0)
        assert compute_replay_hash("/a/game.SC2Replay", date) == compute_replay_hash(
            "/a/game.SC2Replay", date
        )

    def test_format(self):
        value = compute_replay_hash("game.SC2Replay", datetime(2024, 5, 1, 20, 0, 0))
        assert len(value) == 16
        assert value == value.upper()
        int(value, 16)

    def test_depends_on_filename_only(self):
        date = datetime(2024, 5, 1, 20, 0, 0)
        assert compute_replay_hash("/a/game.SC2Replay", date) == compute_replay_hash(
            "/b/game.SC2Replay", date
        )

    def test_depends_on_date(self):
        a = compute_replay_hash("game.SC2Replay", datetime(2024, 5, 1, 20, 0, 0))
        b = compute_replay_hash("game.SC2Replay", datetime(2024, 5, 1, 20, 0, 1))
        assert a != b

    def test_metadata_property(self):
        date = datetime(2024, 5, 1, 20, 0, 0)
        metadata = ReplayMetadata(
            file_path="/x/game.SC2Replay",
            player1=PlayerSlot("A#1"),
            player2=PlayerSlot("B#2"),
            game_date=date,
        )
        assert metadata.replay_hash == compute_replay_hash("game.SC2Replay", date)
        assert metadata.map_name == "Unknown"
        assert metadata.build_order == []


class TestComputeParallelism:
    @pytest.mark.parametrize(
        ("cores", "expected"),
        [(1, 1), (2, 1), (3, 1), (4, 2), (6, 3), (8, 4), (12, 8), (16, 11), (32, 24)],
    )
    def test_table(self, cores, expected):
        assert compute_parallelism(cores) == expected

    def test_default_uses_cpu_count(self):
        assert compute_parallelism() >= 1


class TestCacheState:
    def test_uninitialized_by_default(self):
        state = CacheState()
        assert state.is_initialized is False
        assert state.is_validation_due(datetime(2024, 1, 1), timedelta(minutes=60))

    def test_validation_interval(self):
        validated = datetime(2024, 1, 1, 12, 0, 0)
        state = CacheState(cache_initialized_at=validated, last_validated_at=validated)
        interval = timedelta(minutes=60)
        assert not state.is_validation_due(validated + timedelta(minutes=59), interval)
        assert state.is_validation_due(validated + timedelta(minutes=60), interval)


class TestSyncOptions:
    def test_defaults(self):
        options = SyncOptions()
        assert options.parallelism is None
        assert options.extraction_parallelism == 1
        assert options.validation_interval == timedelta(minutes=60)


class TestExtractionOutcome:
    def test_ok(self):
        assert not ExtractionOutcome(path="x", error="boom").ok


class TestSyncResult:
    def test_success_without_errors(self):
        assert SyncResult().success is True

    def test_failure_with_errors_and_nothing_inserted(self):
        result = SyncResult(errors=["boom"])
        assert result.success is False
        assert result.to_message().startswith("❌")

    def test_partial_success(self):
        result = SyncResult(replays_inserted=2, errors=["boom"])
        assert result.success is True

    def test_message_up_to_date(self):
        assert "Déjà à jour" in SyncResult().to_message()

    def test_message_counts(self):
        result = SyncResult(
            replays_inserted=3,
            replays_failed=1,
            build_order_entries_inserted=12,
            duration_seconds=1.5,
        )
        message = result.to_message()
        assert message.startswith("✅")
        assert "3 nouveaux replays" in message
        assert "1 illisibles" in message
        assert "12 étapes de build" in message
        assert "(1.5s)" in message

    def test_total_processed(self):
        result = SyncResult(replays_inserted=2, replays_skipped=1, replays_failed=1)
        assert result.total_replays_processed == 4

    def test_to_dict(self):
        result = SyncResult(mode="full", replays_inserted=1, started_at=datetime(2024, 1, 1))
        data = result.to_dict()
        assert data["mode"] == "full"
        assert data["success"] is True
        assert data["started_at"] == "2024-01-01T00:00:00"
        assert data["finished_at"] is None
