"""Column profiling used to build filter and amount-column choices."""

from __future__ import annotations

import math
from typing import Iterable, Mapping

from deposit_doctor.numbers import parse_float_prefix

NUMERIC_SAMPLE_SIZE = 10
NUMERIC_THRESHOLD = 0.7


def _cell(row: Mapping[str, object], column: str) -> str:
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


def get_distinct_values(rows: Iterable[Mapping[str, object]], column: str) -> list[str]:
    return sorted({value for value in (_cell(row, column) for row in rows) if value})


def is_numeric_column(rows: list[Mapping[str, object]], column: str) -> bool:
    """
    True when at least 70% of the non-empty values among the first ten rows
    start with a number. Blank cells are not counted either way.
    """
    sample = [_cell(row, column) for row in rows[:NUMERIC_SAMPLE_SIZE]]
    non_empty = [value for value in sample if value]
    if not non_empty:
        return False
    numeric = sum(1 for value in non_empty if not math.isnan(parse_float_prefix(value)))
    return numeric / len(non_empty) >= NUMERIC_THRESHOLD


def numeric_columns(columns: list[str], rows: list[Mapping[str, object]]) -> list[str]:
    return [column for column in columns if is_numeric_column(rows, column)]


def profile_columns(columns: list[str], rows: list[Mapping[str, object]]) -> list[dict]:
    return [
        {
            "name": column,
            "numeric": is_numeric_column(rows, column),
            "distinct_values": len(get_distinct_values(rows, column)),
        }
        for column in columns
    ]
