"""
extractor.py — header discovery and row extraction for deposit files

Public API:
    parsed = parse_deposit_file("march.xlsx", header_row_index=2)
    parsed.columns   -> ["Date", "Amount", ...]
    parsed.rows      -> [{"Date": "2024-03-01", "Amount": "1.234,50"}, ...]

The header row does not have to start in column A. The first non-empty cell
of the header row fixes the start column, and every data row is read from
that same column onward, so a blank gutter column on the left never shifts
values under the wrong header.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from deposit_doctor.errors import NoDataRowsError, NoHeadersFoundError
from deposit_doctor.reader import Cell, Sheet, UploadSource, read_upload, read_workbook

LOGGER = logging.getLogger(__name__)

RESERVED_HEADER_PREFIXES = ("__EMPTY", "Unnamed: ")


@dataclass(frozen=True)
class ParsedSheet:
    columns: list[str]
    rows: list[dict[str, str]] = field(repr=False)
    row_count: int
    header_row_index: int = 0
    sheet_name: str = ""
    file_name: str = ""

    def to_dict(self) -> dict:
        return {
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
            "rowCount": self.row_count,
        }


def coerce_cell(cell: Optional[Cell]) -> str:
    """Booleans and dates keep their display text; everything else its raw value."""
    if cell is None:
        return ""
    if cell.kind in {"b", "d"} and cell.text:
        return cell.text
    if cell.value is not None and cell.value != "":
        if isinstance(cell.value, float) and cell.value.is_integer():
            return str(int(cell.value))
        return str(cell.value)
    return cell.text or ""


def _cell_is_empty(cell: Optional[Cell]) -> bool:
    return coerce_cell(cell).strip() == ""


def _dedupe(headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    unique: list[str] = []
    for header in headers:
        name = header
        while name in seen:
            seen[header] += 1
            name = f"{header}_{seen[header]}"
        seen.setdefault(name, 0)
        unique.append(name)
    return unique


def find_start_column(sheet: Sheet, row_index: int) -> Optional[int]:
    ref = sheet.ref
    for col in range(ref.start_col, ref.end_col + 1):
        if not _cell_is_empty(sheet.cell(row_index, col)):
            return col
    return None


def extract_headers(sheet: Sheet, row_index: int) -> tuple[list[str], int]:
    """Return (headers, start column) for one candidate header row."""
    start_col = find_start_column(sheet, row_index)
    if start_col is None:
        return [], sheet.ref.start_col

    headers: list[str] = []
    for col in range(start_col, sheet.ref.end_col + 1):
        text = coerce_cell(sheet.cell(row_index, col)).strip()
        headers.append(text or f"Column {len(headers) + 1}")
    return _dedupe(headers), start_col


def _resolve_header_row(sheet: Sheet, requested: int, log: logging.Logger) -> int:
    ref = sheet.ref
    if requested < ref.start_row:
        log.debug("header row %d is above the data range; using row %d", requested, ref.start_row)
        return ref.start_row
    if requested > ref.end_row:
        log.warning(
            "header row %d is outside the data range (rows %d-%d); falling back to row %d",
            requested,
            ref.start_row,
            ref.end_row,
            ref.start_row,
        )
        return ref.start_row
    return requested


def extract_table(
    sheet: Sheet,
    header_row_index: int = 0,
    *,
    file_name: str = "",
    logger: Optional[logging.Logger] = None,
) -> tuple[list[str], list[dict[str, str]], int]:
    """
    Turn a sheet into (columns, rows, header row actually used).

    An occupied sheet always yields headers: when no header text is found
    even at the first row, the columns are named Column 1..k.

    Raises:
        NoHeadersFoundError  if the sheet has no occupied range.
        NoDataRowsError      if headers were found but no data row survived.
    """
    log = logger or LOGGER
    ref = sheet.ref
    if ref is None:
        raise NoHeadersFoundError(
            f"No headers found in {file_name}: sheet '{sheet.name}' is empty",
            file_name=file_name,
            header_row_index=header_row_index,
        )
    header_row = _resolve_header_row(sheet, header_row_index, log)

    headers, start_col = extract_headers(sheet, header_row)
    if not headers and header_row != ref.start_row:
        log.warning("no headers at row %d of %s; retrying at row %d", header_row, file_name, ref.start_row)
        header_row = ref.start_row
        headers, start_col = extract_headers(sheet, header_row)
    if not headers:
        start_col = ref.start_col
        headers = [f"Column {n}" for n in range(1, ref.end_col - start_col + 2)]
        log.warning("no header text in %s; using generated column names", file_name)

    log.debug("headers at row %d from column %d: %s", header_row, start_col, headers)

    exposed = [
        (offset, name)
        for offset, name in enumerate(headers)
        if not name.startswith(RESERVED_HEADER_PREFIXES)
    ]
    columns = [name for _, name in exposed]

    rows: list[dict[str, str]] = []
    for row_index in range(header_row + 1, ref.end_row + 1):
        values = [coerce_cell(sheet.cell(row_index, start_col + offset)) for offset, _ in exposed]
        if not any(value.strip() for value in values):
            continue
        rows.append(dict(zip(columns, values)))

    if not rows:
        raise NoDataRowsError(
            f"No data rows found in {file_name} below header row {header_row}; "
            "check the header row setting",
            file_name=file_name,
            header_row_index=header_row,
        )

    return columns, rows, header_row


def parse_deposit_file(
    source: UploadSource,
    filename: Optional[str] = None,
    header_row_index: int = 0,
    *,
    logger: Optional[logging.Logger] = None,
) -> ParsedSheet:
    """
    Parse an uploaded deposit spreadsheet into columns and string rows.

    Args:
        source:            Path, raw bytes, or file-like upload.
        filename:          Name used to pick the decoder (required for bytes).
        header_row_index:  Zero-based row holding the column names.
        logger:            Diagnostics sink; defaults to this module's logger.

    Raises:
        ParseError (EmptyWorkbookError, NoHeadersFoundError, NoDataRowsError)
        ImportError  if an optional spreadsheet engine is missing.
    """
    if header_row_index < 0:
        raise ValueError(f"header_row_index must be non-negative, got {header_row_index}")

    log = logger or LOGGER
    data, name = read_upload(source, filename)
    sheet = read_workbook(data, name).first_sheet()
    columns, rows, used_index = extract_table(sheet, header_row_index, file_name=name, logger=log)

    log.info("parsed %s: %d columns, %d rows (header row %d)", name, len(columns), len(rows), used_index)
    return ParsedSheet(
        columns=columns,
        rows=rows,
        row_count=len(rows),
        header_row_index=used_index,
        sheet_name=sheet.name,
        file_name=name,
    )
