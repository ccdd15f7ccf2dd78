"""
reader.py — decode an uploaded file into sheets of typed cells

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    data, name = read_upload("path/to/file.xlsx")
    workbook   = read_workbook(data, name)
    sheet      = workbook.first_sheet()

Every sheet is a rectangular grid of Cell objects (or None for blank cells)
together with the occupied range. A Cell keeps three views of the value:

    value — raw value as decoded (str, int, float, bool, datetime, ...)
    text  — display string (TRUE/FALSE for booleans, ISO text for dates)
    kind  — "s" string, "n" number, "b" boolean, "d" date, "e" error

Text files are kept verbatim: "1.234,56" stays a string here and is only
interpreted later by numbers.parse_number_with_commas().
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Optional, Sequence, Union

from deposit_doctor.errors import EmptyWorkbookError, ParseError

LOGGER = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS   = {".csv", ".tsv", ".txt"}
OOXML_FORMATS  = {".xlsx", ".xlsm"}
LEGACY_FORMATS = {".xls"}
ODS_FORMATS    = {".ods"}
ALL_FORMATS    = TEXT_FORMATS | OOXML_FORMATS | LEGACY_FORMATS | ODS_FORMATS

ERROR_VALUES = {"#REF!", "#VALUE!", "#DIV/0!", "#NAME?", "#NULL!", "#N/A", "#NUM!"}

UploadSource = Union[str, Path, bytes, bytearray, BinaryIO]


@dataclass(frozen=True)
class Cell:
    value: Any
    text: str
    kind: str


@dataclass(frozen=True)
class SheetRange:
    """Occupied cell range, zero-based and inclusive on both ends."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int


@dataclass
class Sheet:
    name: str
    cells: list[list[Optional[Cell]]]
    ref: Optional[SheetRange]

    def cell(self, row: int, col: int) -> Optional[Cell]:
        if row < 0 or row >= len(self.cells):
            return None
        line = self.cells[row]
        if col < 0 or col >= len(line):
            return None
        return line[col]


@dataclass
class Workbook:
    file_name: str
    sheet_names: list[str]
    sheets: dict[str, Sheet] = field(default_factory=dict)

    def first_sheet(self) -> Sheet:
        if not self.sheet_names:
            raise EmptyWorkbookError(
                f"No sheets found in {self.file_name}", file_name=self.file_name
            )
        sheet = self.sheets[self.sheet_names[0]]
        if sheet.ref is None:
            raise EmptyWorkbookError(
                f"First sheet '{sheet.name}' of {self.file_name} has no data",
                file_name=self.file_name,
            )
        if len(self.sheet_names) > 1:
            LOGGER.info(
                "%s has %d sheets; using '%s', ignoring %s",
                self.file_name,
                len(self.sheet_names),
                sheet.name,
                self.sheet_names[1:],
            )
        return sheet


# ══════════════════════════════════════════════════════════════════════════════
# UPLOAD INPUT
# ══════════════════════════════════════════════════════════════════════════════

def read_upload(source: UploadSource, filename: Optional[str] = None) -> tuple[bytes, str]:
    """
    Read the whole upload once and return (bytes, file name).

    Accepts a filesystem path, raw bytes (filename required), or a file-like
    object with read(). File-like objects from web frameworks expose their
    name as .name or .filename; an explicit filename wins over both.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return path.read_bytes(), filename or path.name

    if isinstance(source, (bytes, bytearray)):
        if not filename:
            raise ValueError("filename is required when passing raw bytes")
        return bytes(source), filename

    data = source.read()
    if isinstance(data, str):
        data = data.encode("utf-8")
    name = filename or getattr(source, "filename", None) or getattr(source, "name", None)
    if not name:
        raise ValueError("filename is required for unnamed file objects")
    return data, Path(str(name)).name


# ══════════════════════════════════════════════════════════════════════════════
# CELL HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def classify_value(value: Any) -> str:
    if isinstance(value, bool):
        return "b"
    if isinstance(value, (int, float)):
        return "n"
    if isinstance(value, (datetime, date, time)):
        return "d"
    if isinstance(value, str) and value.strip().upper() in ERROR_VALUES:
        return "e"
    return "s"


def make_cell(value: Any) -> Optional[Cell]:
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar from the pandas engines
        value = value.item()
    if is_blank(value):
        return None
    return Cell(value=value, text=to_text(value), kind=classify_value(value))


def _build_sheet(name: str, rows: Iterable[Sequence[Optional[Cell]]]) -> Sheet:
    grid: list[list[Optional[Cell]]] = [list(row) for row in rows]

    occupied = [
        (r, c)
        for r, row in enumerate(grid)
        for c, cell in enumerate(row)
        if cell is not None
    ]
    if not occupied:
        return Sheet(name=name, cells=[], ref=None)

    ref = SheetRange(
        start_row=min(r for r, _ in occupied),
        start_col=min(c for _, c in occupied),
        end_row=max(r for r, _ in occupied),
        end_col=max(c for _, c in occupied),
    )
    width = ref.end_col + 1
    cells = [
        (row + [None] * (width - len(row)))[:width]
        for row in grid[: ref.end_row + 1]
    ]
    return Sheet(name=name, cells=cells, ref=ref)


# ══════════════════════════════════════════════════════════════════════════════
# TEXT FILES
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    try:
        raw.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass

    import chardet

    detected = chardet.detect(raw).get("encoding")
    return detected or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode an export one line at a time so a single bad line cannot poison
    the whole file. Each line tries UTF-8, then the detected encoding, then
    latin-1, and finally CP1252 with replacement characters. A leading BOM
    and NUL bytes are removed.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue

        widths = [len(row) for row in rows]
        mode_width, mode_count = Counter(widths).most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(widths)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim

    return best_delim


def _read_text_workbook(raw: bytes, file_name: str, suffix: str) -> Workbook:
    text = _read_text_safely(raw, _detect_encoding(raw))
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    LOGGER.debug("%s: delimiter %r", file_name, delimiter)

    try:
        records = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    except csv.Error as exc:
        raise ParseError(f"Could not parse {file_name}: {exc}", file_name=file_name) from exc

    rows = [
        [Cell(value=value, text=value, kind="s") if value != "" else None for value in record]
        for record in records
    ]
    name = Path(file_name).stem or "Sheet1"
    return Workbook(file_name=file_name, sheet_names=[name], sheets={name: _build_sheet(name, rows)})


# ══════════════════════════════════════════════════════════════════════════════
# SPREADSHEET CONTAINERS
# ══════════════════════════════════════════════════════════════════════════════

def _read_ooxml_workbook(raw: bytes, file_name: str) -> Workbook:
    from openpyxl import load_workbook

    try:
        wb = load_workbook(io.BytesIO(raw), data_only=True)
    except Exception as exc:
        raise ParseError(f"Could not read workbook {file_name}: {exc}", file_name=file_name) from exc

    workbook = Workbook(file_name=file_name, sheet_names=[])
    try:
        for ws in wb.worksheets:
            rows = (
                [make_cell(cell.value) for cell in row]
                for row in ws.iter_rows(
                    min_row=1, min_col=1, max_row=ws.max_row, max_col=ws.max_column
                )
            )
            workbook.sheet_names.append(ws.title)
            workbook.sheets[ws.title] = _build_sheet(ws.title, rows)
    finally:
        wb.close()
    return workbook


def _read_pandas_workbook(raw: bytes, file_name: str, engine: str) -> Workbook:
    import pandas as pd

    try:
        frames = pd.read_excel(
            io.BytesIO(raw), sheet_name=None, header=None, dtype=object, engine=engine
        )
    except Exception as exc:
        raise ParseError(f"Could not read workbook {file_name}: {exc}", file_name=file_name) from exc

    workbook = Workbook(file_name=file_name, sheet_names=[])
    for name, df in frames.items():
        rows = (
            [None if pd.isna(value) else make_cell(_from_pandas(value)) for value in record]
            for record in df.itertuples(index=False, name=None)
        )
        workbook.sheet_names.append(str(name))
        workbook.sheets[str(name)] = _build_sheet(str(name), rows)
    return workbook


def _from_pandas(value: Any) -> Any:
    import pandas as pd

    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def read_workbook(data: bytes, filename: str) -> Workbook:
    """
    Decode raw bytes into a Workbook; the extension picks the decoder.

    Raises:
        ParseError   if the format is unsupported or the container is unreadable.
        ImportError  if an optional engine (xlrd, odfpy) is missing.
    """
    suffix = Path(filename).suffix.lower()

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ParseError(
            f"Unsupported format '{suffix or '[missing extension]'}' for {filename}. Supported: {supported}",
            file_name=filename,
        )

    if suffix in TEXT_FORMATS:
        return _read_text_workbook(data, filename, suffix)

    if suffix in OOXML_FORMATS:
        return _read_ooxml_workbook(data, filename)

    if suffix in LEGACY_FORMATS:
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
        return _read_pandas_workbook(data, filename, engine="xlrd")

    try:
        import odf  # noqa: F401
    except ImportError:
        raise ImportError(".ods files require odfpy; run: pip install odfpy")
    return _read_pandas_workbook(data, filename, engine="odf")
