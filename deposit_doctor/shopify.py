"""
shopify.py — Shopify payments export to sales rows

Public API:
    result  = parse_shopify_file("payments.csv")
    grouped = group_shopify_sales(result.rows)

Shopify exports use a fixed header vocabulary. Columns are located by exact
header text once per file; headers outside SHOPIFY_COLUMN_MAPPING are kept in
raw_rows but otherwise ignored. A transaction without an order name or a
payment gateway is incomplete and is left out of rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, replace
from datetime import date
from typing import Optional

from deposit_doctor.errors import InsufficientRowsError
from deposit_doctor.extractor import coerce_cell
from deposit_doctor.numbers import parse_numeric_value
from deposit_doctor.reader import UploadSource, read_upload, read_workbook

LOGGER = logging.getLogger(__name__)

SHOPIFY_COLUMN_MAPPING = {
    "Transaction ID": "transaction_id",
    "Day": "day",
    "Order name": "order_name",
    "Payment gateway": "payment_gateway",
    "POS location name": "pos_location_name",
    "Order sales channel": "order_sales_channel",
    "POS register ID": "pos_register_id",
    "Gross payments": "gross_payments",
    "Refunded payments": "refunded_payments",
    "Net payments": "net_payments",
}

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


@dataclass
class ShopifyImportRow:
    # ISO date when the export's day could be read, the raw text otherwise.
    day: str
    order_name: str
    payment_gateway: str
    gross_payments: float = 0.0
    refunded_payments: float = 0.0
    net_payments: float = 0.0
    transaction_id: Optional[str] = None
    pos_location_name: Optional[str] = None
    order_sales_channel: Optional[str] = None
    pos_register_id: Optional[str] = None

    @property
    def group_key(self) -> str:
        return f"{self.day}|{self.order_name}|{self.payment_gateway}"

    def to_record(self) -> dict:
        """Storage shape: ISO day, optional fields omitted when missing."""
        record = {key: value for key, value in asdict(self).items() if value is not None}
        record["day"] = format_date_for_db(self.day)
        return record


@dataclass
class ShopifyParseResult:
    columns: list[str]
    rows: list[ShopifyImportRow]
    raw_rows: list[dict[str, str]]
    row_count: int


# ══════════════════════════════════════════════════════════════════════════════
# DATES
# ══════════════════════════════════════════════════════════════════════════════

def convert_shopify_date(value: str) -> str:
    """MM/DD/YYYY -> DD/MM/YYYY for display; other text is returned unchanged."""
    if not value:
        return ""
    parts = value.split("/")
    if len(parts) == 3:
        month, day, year = parts
        return f"{day.zfill(2)}/{month.zfill(2)}/{year}"
    return value


def format_date_for_db(value: object) -> str:
    """
    Normalise a Shopify day to YYYY-MM-DD.

    ISO dates pass through untouched, M/D/YYYY is read as US month/day, and
    anything else goes through pandas' date parser. Returns "" when the value
    cannot be read as a date.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    if ISO_DATE_RE.match(text):
        return text

    match = US_DATE_RE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return ""

    import pandas as pd

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return ""
    return parsed.strftime("%Y-%m-%d")


# ══════════════════════════════════════════════════════════════════════════════
# PARSING
# ══════════════════════════════════════════════════════════════════════════════

def _optional_text(value: str) -> Optional[str]:
    return value if value else None


def map_shopify_row(values: list[str], indices: dict[str, int]) -> Optional[ShopifyImportRow]:
    def field_value(name: str) -> str:
        index = indices.get(name)
        if index is None or index >= len(values):
            return ""
        return values[index]

    day = field_value("day").strip()
    order_name = field_value("order_name")
    payment_gateway = field_value("payment_gateway")
    if not order_name or not payment_gateway:
        return None

    return ShopifyImportRow(
        transaction_id=_optional_text(field_value("transaction_id")),
        day=format_date_for_db(day) or day,
        order_name=order_name,
        payment_gateway=payment_gateway.strip(),
        pos_location_name=_optional_text(field_value("pos_location_name")),
        order_sales_channel=_optional_text(field_value("order_sales_channel")),
        pos_register_id=_optional_text(field_value("pos_register_id")),
        gross_payments=parse_numeric_value(field_value("gross_payments")),
        refunded_payments=parse_numeric_value(field_value("refunded_payments")),
        net_payments=parse_numeric_value(field_value("net_payments")),
    )


def parse_shopify_file(
    source: UploadSource,
    filename: Optional[str] = None,
    header_row_index: int = 0,
    *,
    logger: Optional[logging.Logger] = None,
) -> ShopifyParseResult:
    """
    Parse a Shopify payments export.

    Raises:
        EmptyWorkbookError     if the file has no sheet or no data.
        InsufficientRowsError  if the sheet ends before header_row_index.
        ValueError             if header_row_index is negative.
    """
    if header_row_index < 0:
        raise ValueError(f"header_row_index must be non-negative, got {header_row_index}")

    log = logger or LOGGER
    data, name = read_upload(source, filename)
    sheet = read_workbook(data, name).first_sheet()

    grid = [[coerce_cell(cell) for cell in row] for row in sheet.cells]
    if len(grid) <= header_row_index:
        raise InsufficientRowsError(
            f"{name} has {len(grid)} row(s); header row {header_row_index} is past the end",
            file_name=name,
            header_row_index=header_row_index,
        )

    headers = [value.strip() for value in grid[header_row_index]]
    log.debug("shopify headers in %s: %s", name, headers)

    indices: dict[str, int] = {}
    for index, header in enumerate(headers):
        mapped = SHOPIFY_COLUMN_MAPPING.get(header)
        if mapped:
            indices[mapped] = index
    log.debug("shopify column indices: %s", indices)

    raw_rows: list[dict[str, str]] = []
    rows: list[ShopifyImportRow] = []
    for values in grid[header_row_index + 1:]:
        if not any(value for value in values):
            continue
        raw_rows.append({header: values[i] if i < len(values) else "" for i, header in enumerate(headers)})
        mapped_row = map_shopify_row(values, indices)
        if mapped_row is not None:
            rows.append(mapped_row)

    log.info("parsed %d valid Shopify rows from %d total rows in %s", len(rows), len(raw_rows), name)
    return ShopifyParseResult(columns=headers, rows=rows, raw_rows=raw_rows, row_count=len(rows))


# ══════════════════════════════════════════════════════════════════════════════
# AGGREGATION
# ══════════════════════════════════════════════════════════════════════════════

def group_shopify_sales(rows: list[ShopifyImportRow]) -> dict[str, ShopifyImportRow]:
    """Merge rows sharing day|order_name|payment_gateway; amounts are summed."""
    grouped: dict[str, ShopifyImportRow] = {}
    for row in rows:
        existing = grouped.get(row.group_key)
        if existing is None:
            grouped[row.group_key] = replace(row)
            continue
        existing.gross_payments += row.gross_payments
        existing.refunded_payments += row.refunded_payments
        existing.net_payments += row.net_payments

    LOGGER.debug("grouped %d Shopify rows into %d groups", len(rows), len(grouped))
    return grouped


def get_unique_payment_gateways(rows: list[ShopifyImportRow]) -> list[str]:
    return sorted({row.payment_gateway.strip() for row in rows if row.payment_gateway})


def get_unique_order_sales_channels(rows: list[ShopifyImportRow]) -> list[str]:
    return sorted({row.order_sales_channel.strip() for row in rows if row.order_sales_channel})
