"""
totals.py — deposit totals from filtered rows

    calc = calculate_deposit_totals(rows, "Amount", refund_column="Refund",
                                    tax_method="fixed_percent", tax_value=14)
    calc.final_amount

Amounts go through parse_number_with_commas(), so a file mixing "1,234.50"
and "1.234,50" still sums correctly. Cells that cannot be read count as 0 and
are reported in DepositCalculation.unparseable_values.

The rows passed in are never modified; conversion happens on a copy so the
same parsed file can be recalculated after the tax settings change.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Mapping, Optional

from deposit_doctor.errors import SettingsError
from deposit_doctor.numbers import parse_float_prefix, parse_number_with_commas

LOGGER = logging.getLogger(__name__)

TAX_METHODS = ("none", "fixed_percent", "fixed_amount", "column_based")

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class DepositCalculation:
    total_amount: float
    total_refunds: float
    net_amount: float
    tax_amount: float
    final_amount: float
    rows_after_filter: int
    unparseable_values: int = 0

    def to_dict(self) -> dict:
        return {
            "totalAmount": self.total_amount,
            "totalRefunds": self.total_refunds,
            "netAmount": self.net_amount,
            "taxAmount": self.tax_amount,
            "finalAmount": self.final_amount,
            "rowsAfterFilter": self.rows_after_filter,
        }

    def as_record(self) -> dict:
        return asdict(self)


def round_money(value: float) -> float:
    """Half-up rounding to cents (2.345 -> 2.35, -2.345 -> -2.35)."""
    if not math.isfinite(value):
        return value
    amount = Decimal(repr(value))
    with localcontext() as ctx:
        # Enough digits for every whole float plus the two cents.
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return float(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def sum_column(rows: list[Mapping[str, object]], column: str) -> float:
    """Plain leading-number sum; blank and unreadable cells count as 0."""
    total = 0.0
    for row in rows:
        value = parse_float_prefix(row.get(column) or 0)
        total += 0.0 if math.isnan(value) else value
    return total


def _convert_column(
    rows: list[dict],
    column: str,
    log: logging.Logger,
) -> int:
    failures = 0
    for index, row in enumerate(rows):
        value = row.get(column)
        if value is None or value == "" or value == "0":
            row[column] = 0.0
            continue
        number = parse_number_with_commas(value)
        if math.isnan(number):
            failures += 1
            log.warning("row %d: could not read %r in column '%s'; counting it as 0", index + 1, value, column)
            number = 0.0
        row[column] = number
    return failures


def calculate_deposit_totals(
    rows: list[Mapping[str, object]],
    amount_column: str,
    refund_column: Optional[str] = None,
    tax_method: Optional[str] = None,
    tax_value: Optional[float] = None,
    tax_column: Optional[str] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> DepositCalculation:
    """
    Sum amount/refund columns and apply the tax policy.

    Tax methods:
        none           0
        fixed_percent  net_amount * tax_value / 100
        fixed_amount   tax_value, once per deposit
        column_based   sum of tax_column over the rows as given

    rows_after_filter is len(rows): pass rows that are already filtered.
    """
    log = logger or LOGGER
    method = tax_method or "none"
    if method not in TAX_METHODS:
        raise SettingsError(f"Unknown tax method '{method}'. Expected one of: {', '.join(TAX_METHODS)}")

    working = [dict(row) for row in rows]
    failures = _convert_column(working, amount_column, log)
    if refund_column:
        failures += _convert_column(working, refund_column, log)
    if method == "column_based" and tax_column:
        failures += _convert_column(working, tax_column, log)

    total_amount = sum(row[amount_column] for row in working)
    total_refunds = sum(row[refund_column] for row in working) if refund_column else 0.0
    net_amount = total_amount - total_refunds

    tax_amount = 0.0
    if method == "fixed_percent" and tax_value:
        tax_amount = net_amount * (tax_value / 100)
    elif method == "fixed_amount" and tax_value:
        tax_amount = float(tax_value)
    elif method == "column_based" and tax_column:
        # Summed over the caller's rows, not the converted copy.
        tax_amount = sum_column(rows, tax_column)

    final_amount = net_amount + tax_amount

    if failures:
        log.warning("%d value(s) could not be read as numbers and were counted as 0", failures)
    log.debug(
        "totals over %d rows: amount=%s refunds=%s tax=%s (%s)",
        len(working),
        total_amount,
        total_refunds,
        tax_amount,
        method,
    )

    return DepositCalculation(
        total_amount=round_money(total_amount),
        total_refunds=round_money(total_refunds),
        net_amount=round_money(net_amount),
        tax_amount=round_money(tax_amount),
        final_amount=round_money(final_amount),
        rows_after_filter=len(rows),
        unparseable_values=failures,
    )
