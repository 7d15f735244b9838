"""Migrations de schéma DuckDB du cache de replays.

Le schéma évolue par une séquence ordonnée de migrations idempotentes
(CREATE ... IF NOT EXISTS uniquement). Chaque version appliquée est
enregistrée dans `schema_migrations` ; les versions déjà présentes sont
ignorées au démarrage suivant.

DuckDB ne gère pas ON DELETE CASCADE : la suppression des build orders
d'un replay est faite par ReplayStore.delete_replay dans une transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)


def get_table_columns(conn: duckdb.DuckDBPyConnection, table_name: str) -> set[str]:
    """Retourne l'ensemble des noms de colonnes d'une table.

    Args:
        conn: Connexion DuckDB.
        table_name: Nom de la table.

    Returns:
        Ensemble des noms de colonnes (vide si la table n'existe pas).
    """
    try:
        cols = conn.execute(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = 'main' AND table_name = ?",
            [table_name],
        ).fetchall()
        return {r[0] for r in cols} if cols else set()
    except Exception as e:
        logger.debug(f"Impossible de lire les colonnes de {table_name}: {e}")
        return set()


def table_exists(conn: duckdb.DuckDBPyConnection, table_name: str) -> bool:
    """Vérifie si une table existe dans le schéma main."""
    try:
        result = conn.execute(
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE table_schema = 'main' AND table_name = ?",
            [table_name],
        ).fetchone()
        return bool(result and result[0] > 0)
    except Exception:
        return False


def index_exists(conn: duckdb.DuckDBPyConnection, index_name: str) -> bool:
    """Vérifie si un index existe."""
    try:
        result = conn.execute(
            "SELECT COUNT(*) FROM duckdb_indexes() WHERE index_name = ?",
            [index_name],
        ).fetchone()
        return bool(result and result[0] > 0)
    except Exception:
        return False


def _execute_script(conn: duckdb.DuckDBPyConnection, ddl: str) -> None:
    """Exécute un script DDL instruction par instruction."""
    for stmt in ddl.split(";"):
        stmt = stmt.strip()
        if stmt:
            conn.execute(stmt)


# ─────────────────────────────────────────────────────────────────────────────
# Migrations
# ─────────────────────────────────────────────────────────────────────────────


def _create_players(conn: duckdb.DuckDBPyConnection) -> None:
    _execute_script(
        conn,
        """
        CREATE SEQUENCE IF NOT EXISTS players_id_seq START 1;
        CREATE TABLE IF NOT EXISTS players (
            id INTEGER PRIMARY KEY DEFAULT nextval('players_id_seq'),
            nickname VARCHAR NOT NULL,
            battle_tag VARCHAR NOT NULL UNIQUE,
            toon VARCHAR NOT NULL UNIQUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    )


def _create_replays(conn: duckdb.DuckDBPyConnection) -> None:
    _execute_script(
        conn,
        """
        CREATE SEQUENCE IF NOT EXISTS replays_id_seq START 1;
        CREATE TABLE IF NOT EXISTS replays (
            id INTEGER PRIMARY KEY DEFAULT nextval('replays_id_seq'),
            replay_hash VARCHAR NOT NULL,
            player1_id INTEGER NOT NULL REFERENCES players(id),
            player2_id INTEGER NOT NULL REFERENCES players(id),
            player1_toon VARCHAR,
            player2_toon VARCHAR,
            map_name VARCHAR NOT NULL,
            player1_race VARCHAR,
            player2_race VARCHAR,
            game_date TIMESTAMP NOT NULL,
            file_path VARCHAR NOT NULL UNIQUE,
            client_version VARCHAR,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    )


def _create_build_order_entries(conn: duckdb.DuckDBPyConnection) -> None:
    # Pas de REFERENCES : DuckDB refuse de supprimer un replay encore référencé
    # dans la même transaction, la cascade est faite par ReplayStore.
    _execute_script(
        conn,
        """
        CREATE SEQUENCE IF NOT EXISTS build_order_entries_id_seq START 1;
        CREATE TABLE IF NOT EXISTS build_order_entries (
            id INTEGER PRIMARY KEY DEFAULT nextval('build_order_entries_id_seq'),
            replay_id INTEGER NOT NULL,
            player_slot VARCHAR NOT NULL,
            time_seconds INTEGER NOT NULL,
            kind VARCHAR NOT NULL,
            name VARCHAR NOT NULL
        )
        """,
    )


def _create_cache_state(conn: duckdb.DuckDBPyConnection) -> None:
    # Ligne unique (id = 1)
    _execute_script(
        conn,
        """
        CREATE TABLE IF NOT EXISTS cache_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            config_hash VARCHAR,
            cache_initialized_at TIMESTAMP,
            last_validated_at TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    )


def _create_indexes(conn: duckdb.DuckDBPyConnection) -> None:
    _execute_script(
        conn,
        """
        CREATE INDEX IF NOT EXISTS idx_replays_hash ON replays(replay_hash);
        CREATE INDEX IF NOT EXISTS idx_replays_game_date ON replays(game_date);
        CREATE INDEX IF NOT EXISTS idx_replays_players ON replays(player1_id, player2_id);
        CREATE INDEX IF NOT EXISTS idx_boe_replay ON build_order_entries(replay_id);
        CREATE INDEX IF NOT EXISTS idx_boe_slot ON build_order_entries(player_slot)
        """,
    )


# Séquence ordonnée (version, nom, fonction). Ne jamais réordonner.
MIGRATIONS: list[tuple[int, str, Callable[[duckdb.DuckDBPyConnection], None]]] = [
    (1, "create_players", _create_players),
    (2, "create_replays", _create_replays),
    (3, "create_build_order_entries", _create_build_order_entries),
    (4, "create_cache_state", _create_cache_state),
    (5, "create_indexes", _create_indexes),
]


def _ensure_migrations_table(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            name VARCHAR NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )


def get_applied_versions(conn: duckdb.DuckDBPyConnection) -> set[int]:
    """Retourne les versions de migration déjà appliquées."""
    if not table_exists(conn, "schema_migrations"):
        return set()
    rows = conn.execute("SELECT version FROM schema_migrations").fetchall()
    return {int(r[0]) for r in rows}


def run_migrations(conn: duckdb.DuckDBPyConnection) -> list[int]:
    """Applique les migrations manquantes, dans l'ordre.

    Chaque migration est appliquée dans sa propre transaction avec
    l'enregistrement de sa version.

    Args:
        conn: Connexion DuckDB (lecture/écriture).

    Returns:
        Versions appliquées lors de cet appel (vide si le schéma est à jour).
    """
    _ensure_migrations_table(conn)
    applied = get_applied_versions(conn)
    newly_applied: list[int] = []

    for version, name, migrate in MIGRATIONS:
        if version in applied:
            continue
        conn.begin()
        try:
            migrate(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                [version, name],
            )
            conn.commit()
        except Exception:
            conn.rollback()
            logger.error(f"Migration {version} ({name}) échouée")
            raise
        logger.info(f"Migration {version} appliquée: {name}")
        newly_applied.append(version)

    return newly_applied


def get_schema_version(conn: duckdb.DuckDBPyConnection) -> int:
    """Version de schéma courante (0 si aucune migration)."""
    applied = get_applied_versions(conn)
    return max(applied) if applied else 0
