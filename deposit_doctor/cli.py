from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from deposit_doctor import __version__ as TOOL_VERSION
from deposit_doctor.columns import get_distinct_values, profile_columns
from deposit_doctor.contracts import build_payload, build_run_summary
from deposit_doctor.errors import SettingsError
from deposit_doctor.extractor import parse_deposit_file
from deposit_doctor.numbers import format_with_commas
from deposit_doctor.settings import (
    DepositSettings,
    SettingsStore,
    calculate_from_settings,
    default_settings_path,
)
from deposit_doctor.shopify import group_shopify_sales, parse_shopify_file
from deposit_doctor.totals import TAX_METHODS

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class DepositDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


class WarningCollector(logging.Handler):
    """Keeps warning messages so they can be echoed in the JSON run summary."""

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if getattr(args, "verbose", False):
        level = logging.INFO
    if getattr(args, "quiet", False):
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, force=True)


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, SettingsError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def money(value: float) -> str:
    return format_with_commas(round(value, 2))


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Errors only")
    parser.add_argument("-v", "--verbose", action="store_true", help="More logs")


def build_parser() -> argparse.ArgumentParser:
    parser = DepositDoctorArgumentParser(prog="deposit-doctor", description="Deposit file ingestion and totals.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    columns = subparsers.add_parser("columns", help="List the columns of a deposit file.")
    columns.add_argument("input", help="Input file path")
    columns.add_argument("--header-row", type=int, default=None, help="Zero-based header row index")
    columns.add_argument("--values", dest="values_column", help="Also list the distinct values of this column")
    add_common_arguments(columns)

    totals = subparsers.add_parser("totals", help="Calculate deposit totals for a file.")
    totals.add_argument("input", help="Input file path")
    totals.add_argument("--payment-method", dest="payment_method", help="Load saved settings for this payment method")
    totals.add_argument("--settings", dest="settings_path", help="Settings store path")
    totals.add_argument("--header-row", type=int, default=None, help="Zero-based header row index")
    totals.add_argument("--amount", dest="amount_column", help="Amount column")
    totals.add_argument("--refund", dest="refund_column", help="Refund column")
    totals.add_argument("--filter", dest="filter_column", help="Filter column")
    totals.add_argument("--include", dest="include_values", action="append", help="Allowed filter value (repeatable)")
    totals.add_argument("--tax-method", choices=TAX_METHODS, help="Tax method")
    totals.add_argument("--tax-value", type=float, help="Percent or fixed amount")
    totals.add_argument("--tax-column", help="Tax column for column_based tax")
    add_common_arguments(totals)

    shopify = subparsers.add_parser("shopify", help="Parse a Shopify payments export.")
    shopify.add_argument("input", help="Input file path")
    shopify.add_argument("--header-row", type=int, default=0, help="Zero-based header row index")
    shopify.add_argument("--group", action="store_true", help="Group rows by day, order and gateway")
    add_common_arguments(shopify)

    settings = subparsers.add_parser("settings", help="Inspect or save deposit settings.")
    settings_subparsers = settings.add_subparsers(dest="settings_command", required=True)
    show = settings_subparsers.add_parser("show", help="Print saved settings for a payment method.")
    show.add_argument("payment_method", help="Payment method id")
    show.add_argument("--settings", dest="settings_path", help="Settings store path")
    save = settings_subparsers.add_parser("save", help="Save settings for a payment method.")
    save.add_argument("payment_method", help="Payment method id")
    save.add_argument("--settings", dest="settings_path", help="Settings store path")
    save.add_argument("--amount", dest="amount_column", required=True, help="Amount column")
    save.add_argument("--refund", dest="refund_column", help="Refund column")
    save.add_argument("--filter", dest="filter_column", help="Filter column")
    save.add_argument("--include", dest="include_values", action="append", help="Allowed filter value (repeatable)")
    save.add_argument("--tax-method", choices=TAX_METHODS, default="none", help="Tax method")
    save.add_argument("--tax-value", type=float, help="Percent or fixed amount")
    save.add_argument("--tax-column", help="Tax column for column_based tax")
    save.add_argument("--header-row", type=int, default=None, help="Zero-based header row index")

    subparsers.add_parser("version", help="Print version")
    return parser


def store_for(args: argparse.Namespace) -> SettingsStore:
    path = Path(args.settings_path) if getattr(args, "settings_path", None) else default_settings_path()
    return SettingsStore(path)


def resolve_settings(args: argparse.Namespace) -> DepositSettings:
    """Saved settings first, then any option given on the command line."""
    saved = None
    if args.payment_method:
        saved = store_for(args).get(args.payment_method)
        if saved is None:
            raise CliError(f"No saved settings for payment method '{args.payment_method}'", EXIT_COMMAND_ERROR)

    payload = saved.to_dict() if saved else {"payment_method_id": args.payment_method or "adhoc"}
    if args.amount_column:
        payload["amount_column_name"] = args.amount_column
    if args.refund_column:
        payload["refund_column_name"] = args.refund_column
    if args.filter_column:
        payload["filter_column_name"] = args.filter_column
        payload["filter_include_values"] = args.include_values or []
    if args.tax_method:
        payload["tax_method"] = args.tax_method
        payload["tax_enabled"] = args.tax_method != "none"
    if args.tax_value is not None:
        payload["tax_value"] = args.tax_value
    if args.tax_column:
        payload["tax_column_name"] = args.tax_column
    if args.header_row is not None:
        payload["header_row_index"] = args.header_row
    if not payload.get("amount_column_name"):
        raise CliError("An amount column is required (--amount or saved settings)", EXIT_COMMAND_ERROR)
    return DepositSettings.from_dict(payload)


def render_totals_text(file_name: str, payload: dict[str, Any]) -> str:
    totals = payload["totals"]
    lines = [
        f"File: {file_name}",
        f"Rows in file: {payload['rows_in_file']}",
        f"Rows after filter: {totals['rowsAfterFilter']}",
        f"Total amount: {money(totals['totalAmount'])}",
        f"Total refunds: {money(totals['totalRefunds'])}",
        f"Net amount: {money(totals['netAmount'])}",
        f"Tax ({payload['settings']['tax_method'] if payload['settings']['tax_enabled'] else 'none'}): {money(totals['taxAmount'])}",
        f"Final amount: {money(totals['finalAmount'])}",
    ]
    if payload["unparseable_values"]:
        lines.append(f"Unreadable values counted as 0: {payload['unparseable_values']}")
    return "\n".join(lines) + "\n"


def run_columns(args: argparse.Namespace, collector: WarningCollector) -> int:
    parsed = parse_deposit_file(args.input, header_row_index=args.header_row or 0)
    profile = profile_columns(parsed.columns, parsed.rows)
    body: dict[str, Any] = {
        "file": parsed.file_name,
        "sheet_name": parsed.sheet_name,
        "header_row_index": parsed.header_row_index,
        "row_count": parsed.row_count,
        "columns": profile,
    }
    if args.values_column:
        if args.values_column not in parsed.columns:
            raise CliError(f"Unknown column '{args.values_column}'. Available: {parsed.columns}", EXIT_COMMAND_ERROR)
        body["distinct_values"] = get_distinct_values(parsed.rows, args.values_column)

    if args.json:
        summary = build_run_summary(
            command="columns",
            input_file=str(args.input),
            metrics={"row_count": parsed.row_count, "column_count": len(parsed.columns)},
            warnings=collector.messages,
        )
        print(json_dumps(build_payload("deposit.columns", body, summary)))
        return EXIT_SUCCESS

    print(f"{parsed.file_name}: {parsed.row_count} rows, header row {parsed.header_row_index}")
    for column in profile:
        marker = "numeric" if column["numeric"] else "text"
        print(f"  {column['name']} ({marker}, {column['distinct_values']} distinct)")
    for value in body.get("distinct_values", []):
        print(f"    - {value}")
    return EXIT_SUCCESS


def run_totals(args: argparse.Namespace, collector: WarningCollector) -> int:
    settings = resolve_settings(args)
    parsed = parse_deposit_file(args.input, header_row_index=settings.header_row_index or 0)

    referenced = [settings.amount_column_name, settings.refund_column_name, settings.tax_column_name]
    referenced += [column for column, _ in settings.filters()]
    unknown = [column for column in referenced if column and column not in parsed.columns]
    if unknown:
        raise CliError(f"Columns not found in {parsed.file_name}: {unknown}. Available: {parsed.columns}", EXIT_COMMAND_ERROR)

    calculation = calculate_from_settings(parsed.rows, settings)
    body = {
        "file": parsed.file_name,
        "file_columns": parsed.columns,
        "rows_in_file": parsed.row_count,
        "settings": settings.to_dict(),
        "totals": calculation.to_dict(),
        "unparseable_values": calculation.unparseable_values,
    }

    if args.json:
        summary = build_run_summary(
            command="totals",
            input_file=str(args.input),
            metrics={
                "rows_in_file": parsed.row_count,
                "rows_after_filter": calculation.rows_after_filter,
                "unparseable_values": calculation.unparseable_values,
            },
            warnings=collector.messages,
        )
        print(json_dumps(build_payload("deposit.totals", body, summary)))
    else:
        print(render_totals_text(parsed.file_name, body), end="")
    return EXIT_SUCCESS


def run_shopify(args: argparse.Namespace, collector: WarningCollector) -> int:
    result = parse_shopify_file(args.input, header_row_index=args.header_row)
    rows = list(group_shopify_sales(result.rows).values()) if args.group else result.rows
    body = {
        "columns": result.columns,
        "raw_row_count": len(result.raw_rows),
        "row_count": result.row_count,
        "grouped": bool(args.group),
        "rows": [row.to_record() for row in rows],
    }

    if args.json:
        summary = build_run_summary(
            command="shopify",
            input_file=str(args.input),
            metrics={"raw_rows": len(result.raw_rows), "valid_rows": result.row_count, "output_rows": len(rows)},
            warnings=collector.messages,
        )
        print(json_dumps(build_payload("shopify.import", body, summary)))
        return EXIT_SUCCESS

    gross = sum(row.gross_payments for row in rows)
    net = sum(row.net_payments for row in rows)
    print(f"Rows: {result.row_count} valid of {len(result.raw_rows)}; output rows: {len(rows)}")
    print(f"Gross payments: {money(gross)}")
    print(f"Net payments: {money(net)}")
    return EXIT_SUCCESS


def run_settings(args: argparse.Namespace) -> int:
    store = store_for(args)
    if args.settings_command == "show":
        settings = store.get(args.payment_method)
        if settings is None:
            eprint(f"No saved settings for payment method '{args.payment_method}'")
            return EXIT_COMMAND_ERROR
        print(json_dumps(settings.to_dict()))
        return EXIT_SUCCESS

    settings = DepositSettings(
        payment_method_id=args.payment_method,
        amount_column_name=args.amount_column,
        refund_column_name=args.refund_column,
        filter_column_name=args.filter_column,
        filter_include_values=args.include_values if args.filter_column else None,
        tax_enabled=args.tax_method != "none",
        tax_method=args.tax_method,
        tax_value=args.tax_value,
        tax_column_name=args.tax_column,
        header_row_index=args.header_row,
    )
    store.save(settings)
    emit_human(f"Settings saved: {store.path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        collector = WarningCollector()
        logging.getLogger("deposit_doctor").addHandler(collector)
        try:
            if args.command == "columns":
                return run_columns(args, collector)
            if args.command == "totals":
                return run_totals(args, collector)
            if args.command == "shopify":
                return run_shopify(args, collector)
            if args.command == "settings":
                return run_settings(args)
            if args.command == "version":
                return run_version()
            raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
        finally:
            logging.getLogger("deposit_doctor").removeHandler(collector)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
