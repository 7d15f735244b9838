"""Fixtures communes pour les tests.

Les "replays" de test sont de petits fichiers JSON portant l'extension
.SC2Replay ; `JsonReplayExtractor` les décode comme le ferait un vrai
décodeur. Un fichier dont le contenu est "CORRUPT" fait échouer l'extraction.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from sc2reveal.data.sync.engine import ReplaySyncEngine
from sc2reveal.data.sync.models import BuildOrderEntry, PlayerSlot, ReplayMetadata, SyncOptions
from sc2reveal.data.sync.store import ReplayStore

CORRUPT_MARKER = "CORRUPT"


class JsonReplayExtractor:
    """Extracteur de test : lit un replay sérialisé en JSON."""

    instances: list[JsonReplayExtractor] = []

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.thread_ids: set[int] = set()
        JsonReplayExtractor.instances.append(self)

    def extract(self, path: Path) -> ReplayMetadata | None:
        self.calls.append(str(path))
        self.thread_ids.add(threading.get_ident())
        content = Path(path).read_text(encoding="utf-8")
        if content.strip() == CORRUPT_MARKER:
            raise ValueError("archive MPQ invalide")
        data = json.loads(content)
        if data.get("empty"):
            return None
        return ReplayMetadata(
            file_path=str(path),
            player1=PlayerSlot(*data["player1"]),
            player2=PlayerSlot(*data["player2"]),
            game_date=datetime.fromisoformat(data["game_date"]),
            map_name=data.get("map_name", "Unknown"),
            client_version=data.get("client_version"),
            build_order=[BuildOrderEntry(*e) for e in data.get("build_order", [])],
        )


def write_replay(
    folder: Path,
    name: str,
    *,
    player1: tuple[str, str | None, str] = ("Me#1234", "2-S2-1-1000", "Protoss"),
    player2: tuple[str, str | None, str] = ("Rival#42", "2-S2-1-2000", "Zerg"),
    game_date: str = "2024-05-01T20:00:00",
    map_name: str = "Alcyone LE",
    build_order: list[tuple[str, int, str, str]] | None = None,
    client_version: str | None = "5.0.13",
) -> Path:
    """Écrit un faux replay JSON et retourne son chemin absolu."""
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    payload: dict[str, Any] = {
        "player1": list(player1),
        "player2": list(player2),
        "game_date": game_date,
        "map_name": map_name,
        "client_version": client_version,
        "build_order": [list(e) for e in (build_order or [])],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path.resolve()


def write_corrupt_replay(folder: Path, name: str) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    path.write_text(CORRUPT_MARKER, encoding="utf-8")
    return path.resolve()


@pytest.fixture(autouse=True)
def _reset_extractor_instances():
    JsonReplayExtractor.instances.clear()
    yield
    JsonReplayExtractor.instances.clear()


@pytest.fixture
def replays_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "Replays"
    folder.mkdir()
    return folder


@pytest.fixture
def store(tmp_path: Path):
    """ReplayStore sur un fichier DuckDB temporaire."""
    s = ReplayStore(tmp_path / "replays.duckdb")
    yield s
    s.close()


@pytest.fixture
def make_engine(store: ReplayStore, replays_dir: Path):
    """Fabrique de ReplaySyncEngine branché sur le store et le dossier de test."""

    def _make(
        *,
        folder: Path | str | None = None,
        battle_tag: str | None = "Me#1234",
        recursive: bool = True,
        options: SyncOptions | None = None,
        engine_store: ReplayStore | None = None,
    ) -> ReplaySyncEngine:
        return ReplaySyncEngine(
            engine_store or store,
            JsonReplayExtractor,
            replays_folder=replays_dir if folder is None else folder,
            user_battle_tag=battle_tag,
            recursive=recursive,
            options=options or SyncOptions(parallelism=4),
        )

    return _make


@pytest.fixture
def replay_writer():
    """Retourne write_replay(folder, name, **champs)."""
    return write_replay


@pytest.fixture
def corrupt_writer():
    """Retourne write_corrupt_replay(folder, name)."""
    return write_corrupt_replay


@pytest.fixture
def extractor_cls() -> type[JsonReplayExtractor]:
    return JsonReplayExtractor
