#!/usr/bin/env python3
"""Script de synchronisation du cache de replays.

Point d'entrée unique pour les opérations sur le cache :
- Initialisation au démarrage (premier run ou revalidation)
- Synchronisation avec le dossier de replays
- Ajout d'un replay isolé (fin de partie)
- Statistiques et historique contre un adversaire

Le décodeur de replays est un composant externe, chargé depuis un chemin
d'import "module:fabrique" (option --extractor ou SC2REVEAL_EXTRACTOR).

Usage:
    python scripts/sync.py --help
    python scripts/sync.py --init --extractor my_decoder:ReplayDecoder
    python scripts/sync.py --sync --extractor my_decoder:ReplayDecoder
    python scripts/sync.py --replay "D:/Replays/LE.SC2Replay" --extractor my_decoder:ReplayDecoder
    python scripts/sync.py --stats
    python scripts/sync.py --history "Rival#123"
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import os
import sys
from pathlib import Path

# Ajouter le répertoire parent au path pour les imports
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from sc2reveal.config import AppSettings, load_settings  # noqa: E402
from sc2reveal.data.repositories import ReplayQueries  # noqa: E402
from sc2reveal.data.sync import ReplayStore, ReplaySyncEngine  # noqa: E402
from sc2reveal.data.sync.extraction import ExtractorFactory  # noqa: E402
from sc2reveal.errors import ConfigurationError  # noqa: E402

# Configuration du logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def load_extractor_factory(target: str | None) -> ExtractorFactory:
    """Charge la fabrique d'extracteurs depuis "module:attribut".

    Raises:
        ConfigurationError: Si le chemin est absent ou invalide.
    """
    target = (target or os.environ.get("SC2REVEAL_EXTRACTOR") or "").strip()
    if not target:
        raise ConfigurationError("--extractor", "aucun décodeur de replays configuré")

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError("--extractor", f"format attendu module:fabrique, reçu '{target}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError("--extractor", f"module introuvable: {e}") from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError("--extractor", f"'{attr}' absent ou non appelable dans {module_name}")
    return factory


def _print_progress(phase: str, current: int, total: int) -> None:
    label = "Extraction" if phase == "extract" else "Insertion"
    print(f"\r{label}: {current}/{total}", end="" if current < total else "\n", flush=True)


def _open_store(settings: AppSettings, db_override: str | None) -> ReplayStore:
    db_path = db_override or str(settings.db_path)
    return ReplayStore(db_path, busy_timeout_seconds=settings.cache.busy_timeout_seconds)


def show_stats(queries: ReplayQueries) -> None:
    """Affiche les statistiques du cache."""
    stats = queries.get_cache_stats()
    print("\n📊 Cache de replays")
    print(f"   Replays             : {stats['total_replays']}")
    print(f"   Joueurs             : {stats['total_players']}")
    print(f"   Replays avec build  : {stats['replays_with_build_order']}")
    print(f"   Étapes de build     : {stats['build_order_entries']}")
    if stats["oldest_game"]:
        print(f"   Période             : {stats['oldest_game']} → {stats['newest_game']}")


def show_history(queries: ReplayQueries, user_tag: str, opponent_tag: str, limit: int) -> int:
    """Affiche l'historique contre un adversaire."""
    you = queries.find_player(battle_tag=user_tag)
    opponent = queries.find_player(battle_tag=opponent_tag)
    if you is None or opponent is None:
        missing = user_tag if you is None else opponent_tag
        logger.error(f"Joueur inconnu du cache: {missing}")
        return 1

    df = queries.get_match_history(you.id, opponent.id, limit=limit)
    if df.is_empty():
        print(f"Aucune partie contre {opponent.battle_tag}")
        return 0

    print(f"\n⚔️  {you.battle_tag} vs {opponent.battle_tag} ({df.height} parties)")
    for row in df.iter_rows(named=True):
        print(
            f"   {row['game_date']}  {row['map_name']:<28} "
            f"{row['your_race']} vs {row['opponent_race']}"
        )
    return 0


# =============================================================================
# Main
# =============================================================================


def main() -> int:
    """Point d'entrée principal."""
    parser = argparse.ArgumentParser(
        description="Synchronisation du cache de replays SC2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemples:
  python scripts/sync.py --init --extractor my_decoder:ReplayDecoder
  python scripts/sync.py --sync --extractor my_decoder:ReplayDecoder
  python scripts/sync.py --replay D:/Replays/game.SC2Replay --extractor my_decoder:ReplayDecoder
  python scripts/sync.py --stats
  python scripts/sync.py --history "Rival#123" --limit 20
        """,
    )

    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Chemin vers app_settings.json (défaut: racine du projet)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Chemin vers le cache DuckDB (défaut: data/replays.duckdb)",
    )
    parser.add_argument(
        "--extractor",
        type=str,
        default=None,
        help="Décodeur de replays au format module:fabrique",
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--init",
        action="store_true",
        help="Initialise le cache (premier run ou revalidation)",
    )
    mode_group.add_argument(
        "--sync",
        action="store_true",
        help="Synchronise le cache avec le dossier de replays",
    )
    mode_group.add_argument(
        "--replay",
        type=str,
        default=None,
        help="Ajoute un replay isolé au cache",
    )

    parser.add_argument("--stats", action="store_true", help="Affiche les statistiques du cache")
    parser.add_argument(
        "--history",
        type=str,
        default=None,
        metavar="BATTLE_TAG",
        help="Historique des parties contre un adversaire",
    )
    parser.add_argument("--limit", type=int, default=10, help="Nombre de parties affichées")
    parser.add_argument("--progress", action="store_true", help="Affiche la progression")
    parser.add_argument("-v", "--verbose", action="store_true", help="Mode verbeux")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not (args.init or args.sync or args.replay or args.stats or args.history):
        parser.print_help()
        return 0

    try:
        settings = load_settings(args.settings)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    store = _open_store(settings, args.db)
    exit_code = 0
    try:
        if args.init or args.sync or args.replay:
            try:
                factory = load_extractor_factory(args.extractor)
            except ConfigurationError as e:
                logger.error(str(e))
                return 1

            engine = ReplaySyncEngine.from_settings(settings, factory, store=store)
            callback = _print_progress if args.progress else None

            if args.init:
                result = asyncio.run(engine.initialize_cache(progress_callback=callback))
            elif args.sync:
                result = asyncio.run(engine.sync_from_disk(progress_callback=callback))
            else:
                result = asyncio.run(
                    engine.save_single_replay(args.replay, progress_callback=callback)
                )

            print(result.to_message())
            for warning in result.warnings[:10]:
                logger.warning(warning)
            if not result.success:
                exit_code = 1

        queries = ReplayQueries(store)
        if args.stats:
            show_stats(queries)
        if args.history:
            if not settings.user.battle_tag:
                logger.error("Aucun battle-tag utilisateur configuré (user.battleTag)")
                return 1
            exit_code = max(
                exit_code,
                show_history(queries, settings.user.battle_tag, args.history, args.limit),
            )
    finally:
        store.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
