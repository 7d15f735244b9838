"""Passage DuckDB → Polars pour les requêtes de lecture.

`.pl()` transfère le résultat via Arrow. Si la conversion échoue (type
non géré par Arrow), les lignes sont relues et le DataFrame construit
colonne par colonne.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import duckdb
import polars as pl

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


def _from_rows(columns: Sequence[str], rows: list[tuple]) -> pl.DataFrame:
    if not rows:
        return pl.DataFrame(schema=dict.fromkeys(columns, pl.Utf8))
    return pl.DataFrame(
        {col: [row[i] for row in rows] for i, col in enumerate(columns)},
        strict=False,
    )


def result_to_polars(result: duckdb.DuckDBPyConnection) -> pl.DataFrame:
    """Convertit le résultat d'un `execute` en DataFrame Polars.

    Args:
        result: Curseur DuckDB sur lequel une requête vient d'être exécutée.

    Returns:
        DataFrame Polars (colonnes dans l'ordre du SELECT).
    """
    columns = [desc[0] for desc in result.description or []]
    try:
        return result.pl()
    except (duckdb.Error, ImportError, pl.exceptions.PolarsError) as e:
        logger.debug(f"Transfert Arrow indisponible, relecture ligne à ligne: {e}")
    return _from_rows(columns, result.fetchall())
