"""
Row filtering by allowed column values.

filter_rows_by_column() has three outcomes and callers rely on all of them:

    column is None / ""        -> every row (no filter configured)
    column set, no values      -> no rows (the user unticked everything)
    column set, values given   -> rows whose trimmed value is allowed
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence


def filter_rows_by_column(
    rows: list[dict],
    column: Optional[str],
    allowed_values: Optional[Iterable[str]],
) -> list[dict]:
    if not column:
        return rows

    if isinstance(allowed_values, str):
        allowed_values = [allowed_values] if allowed_values else []
    allowed = set(allowed_values or ())
    if not allowed:
        return []

    return [row for row in rows if str(row.get(column) or "").strip() in allowed]


def apply_filters(
    rows: list[dict],
    filters: Sequence[tuple[Optional[str], Optional[Iterable[str]]]],
) -> list[dict]:
    """Apply several (column, allowed values) filters one after another."""
    for column, allowed_values in filters:
        rows = filter_rows_by_column(rows, column, allowed_values)
    return rows
