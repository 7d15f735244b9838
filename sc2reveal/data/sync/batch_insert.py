"""Insertion groupée des lignes filles d'un replay.

Les étapes de build order d'un replay sont écrites en un seul
`executemany`, dans la transaction ouverte par l'appelant. Les valeurs
sont normalisées selon TYPE_PLAN avant envoi à DuckDB.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, is_dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Colonnes insérées pour une étape de build order
BUILD_ORDER_COLUMNS = ["replay_id", "player_slot", "time_seconds", "kind", "name"]

# Table → colonne → type Python attendu
TYPE_PLAN: dict[str, dict[str, type]] = {
    "build_order_entries": {
        "replay_id": int,
        "player_slot": str,
        "time_seconds": int,
        "kind": str,
        "name": str,
    },
}


def coerce_value(value: Any, expected: type) -> Any:
    """Convertit une valeur vers le type attendu (None si impossible).

    Les temps de jeu fractionnaires sont tronqués à la seconde.
    """
    if value is None:
        return None
    if expected is str:
        text = str(value).strip()
        return text or None
    if expected is int:
        if isinstance(value, bool):
            return int(value)
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None
    return value


def to_row(
    item: Any,
    table_name: str,
    columns: Sequence[str],
    extra: Mapping[str, Any] | None = None,
) -> tuple:
    """Transforme une dataclass ou un dict en tuple ordonné selon `columns`."""
    if is_dataclass(item) and not isinstance(item, type):
        data = asdict(item)
    elif isinstance(item, Mapping):
        data = dict(item)
    else:
        data = {col: getattr(item, col, None) for col in columns}
    if extra:
        data.update(extra)

    plan = TYPE_PLAN.get(table_name, {})
    return tuple(
        coerce_value(data.get(col), plan[col]) if col in plan else data.get(col)
        for col in columns
    )


def batch_insert_rows(
    conn: Any,
    table_name: str,
    rows: Sequence[Any],
    columns: Sequence[str],
    *,
    extra: Mapping[str, Any] | None = None,
) -> int:
    """Insère des lignes en un seul executemany.

    Les erreurs sont propagées : l'appelant gère la transaction.

    Args:
        conn: Curseur DuckDB (transaction ouverte).
        table_name: Table cible.
        rows: Dataclasses ou dicts.
        columns: Colonnes insérées, dans l'ordre.
        extra: Valeurs communes à toutes les lignes (ex: replay_id).

    Returns:
        Nombre de lignes insérées.
    """
    if not rows:
        return 0

    values = [to_row(row, table_name, columns, extra) for row in rows]
    sql = (
        f"INSERT INTO {table_name} ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)})"
    )
    conn.executemany(sql, values)
    logger.debug(f"{len(values)} lignes insérées dans {table_name}")
    return len(values)
