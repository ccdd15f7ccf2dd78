"""Spreadsheet ingestion and deposit totals for payment reconciliation."""

__version__ = "0.1.0"

from deposit_doctor.columns import get_distinct_values, is_numeric_column  # noqa: E402
from deposit_doctor.errors import (  # noqa: E402
    EmptyWorkbookError,
    InsufficientRowsError,
    NoDataRowsError,
    NoHeadersFoundError,
    ParseError,
    SettingsError,
)
from deposit_doctor.extractor import ParsedSheet, parse_deposit_file  # noqa: E402
from deposit_doctor.filters import apply_filters, filter_rows_by_column  # noqa: E402
from deposit_doctor.numbers import format_with_commas, parse_number_with_commas  # noqa: E402
from deposit_doctor.settings import DepositSettings, SettingsStore, calculate_from_settings  # noqa: E402
from deposit_doctor.shopify import (  # noqa: E402
    ShopifyImportRow,
    group_shopify_sales,
    parse_shopify_file,
)
from deposit_doctor.totals import DepositCalculation, calculate_deposit_totals  # noqa: E402

__all__ = [
    "DepositCalculation",
    "DepositSettings",
    "EmptyWorkbookError",
    "InsufficientRowsError",
    "NoDataRowsError",
    "NoHeadersFoundError",
    "ParseError",
    "ParsedSheet",
    "SettingsError",
    "SettingsStore",
    "ShopifyImportRow",
    "apply_filters",
    "calculate_deposit_totals",
    "calculate_from_settings",
    "filter_rows_by_column",
    "format_with_commas",
    "get_distinct_values",
    "group_shopify_sales",
    "is_numeric_column",
    "parse_deposit_file",
    "parse_number_with_commas",
    "parse_shopify_file",
]
