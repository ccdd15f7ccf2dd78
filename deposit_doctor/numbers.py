"""
numbers.py — locale-tolerant number parsing for deposit files

Spreadsheets exported from different banks and gateways disagree about which
character is the decimal point. parse_number_with_commas() settles that per
value, from the separators it actually sees:

    "384,944.49"  -> 384944.49     (US grouping)
    "384.944,49"  -> 384944.49     (European grouping)
    "1,234"       -> 1234.0        (three digits after a lone comma = grouping)
    "12,5"        -> 12.5          (otherwise a lone comma is the decimal point)
    "384-"        -> -384.0        (trailing minus from accounting exports)
    "abc"         -> nan
    "1e400"       -> nan           (outside the float range)

NaN is returned, never raised, so one bad cell cannot abort a whole file.
"""

from __future__ import annotations

import math
import re
from typing import Any

STRICT_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")
WHITESPACE_RE = re.compile(r"\s+")
CURRENCY_NOISE_RE = re.compile(r"[,\s$€£¥₹]")


def _finite(value: Any) -> float:
    try:
        number = float(value)
    except OverflowError:
        return math.nan
    return number if math.isfinite(number) else math.nan


def _strict_float(text: str) -> float:
    if not STRICT_NUMBER_RE.match(text):
        return math.nan
    return _finite(text)


def parse_number_with_commas(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return _finite(value)

    text = WHITESPACE_RE.sub("", str(value))
    if not text:
        return math.nan

    negative = False
    if text.startswith("-"):
        negative = True
        text = text[1:]
    elif text.endswith("-"):
        negative = True
        text = text[:-1]

    dots = text.count(".")
    commas = text.count(",")

    if dots == 1 and commas == 0:
        number = _strict_float(text)
    elif commas == 1 and dots == 0:
        left, right = text.split(",", 1)
        if len(right) == 3 and right.isdigit() and left:
            number = _strict_float(left + right)
        else:
            number = _strict_float(f"{left}.{right}")
    elif dots == 1 and commas >= 1 and text.rfind(".") > text.rfind(","):
        number = _strict_float(text.replace(",", ""))
    elif commas == 1 and dots >= 1 and text.rfind(",") > text.rfind("."):
        number = _strict_float(text.replace(".", "").replace(",", "."))
    else:
        number = _strict_float(text.replace(",", ""))

    if math.isnan(number):
        return number
    return -number if negative else number


def format_with_commas(number: float) -> str:
    """US-style rendering ("1,234.5") that parse_number_with_commas reads back."""
    if isinstance(number, float) and number.is_integer() and abs(number) < 1e15:
        return f"{int(number):,}"
    return f"{number:,}"


def parse_float_prefix(value: Any) -> float:
    """Read the leading number of a value and ignore the rest ("12abc" -> 12.0)."""
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return _finite(value)
    match = FLOAT_PREFIX_RE.match(str(value))
    if not match:
        return math.nan
    return _finite(match.group(1))


def parse_numeric_value(value: Any) -> float:
    """Amount parsing for Shopify exports: "$1,234.50" -> 1234.5, junk -> 0.0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not value:
        return 0.0
    cleaned = CURRENCY_NOISE_RE.sub("", str(value))
    number = parse_float_prefix(cleaned)
    return 0.0 if math.isnan(number) else number
