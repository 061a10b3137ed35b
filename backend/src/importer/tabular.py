"""
Tabular source parsing for test case imports.

Supports:
- CSV: UTF-8 (BOM tolerated), RFC-4180 quoting, first row = headers
- Excel: .xlsx via openpyxl, .xls via xlrd; any sheet, blank rows dropped
- JSON: top-level array, or an object with a testCases/tests array

Everything here is structural: malformed input raises ParseError and the
caller aborts the whole import.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence, Union
from zipfile import BadZipFile

logger = logging.getLogger(__name__)

RawRow = Dict[str, str]
Grid = List[List[str]]

_XLSX_MAGIC = b"PK\x03\x04"
_XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# Sheet-name keywords that suggest a sheet holds test cases.
_TEST_SHEET_KEYWORDS = ("test", "case", "tc", "scenario", "spec", "requirement")

# Header keywords used to guess whether a sheet's first row is a header row.
_HEADER_KEYWORDS = (
    "title",
    "name",
    "steps",
    "expected",
    "test case",
    "description",
    "precondition",
    "result",
    "priority",
    "category",
    "module",
)

_JSON_ARRAY_KEYS = ("testCases", "tests", "test_cases")


class ParseError(ValueError):
    """Raised when a source file is structurally malformed."""


@dataclass(frozen=True)
class SheetInfo:
    """Summary of one workbook sheet, used to let the caller pick a sheet."""

    name: str
    row_count: int
    has_headers: bool
    preview: List[List[str]]
    is_test_case_sheet: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "row_count": self.row_count,
            "has_headers": self.has_headers,
            "preview": [list(r) for r in self.preview],
            "is_test_case_sheet": self.is_test_case_sheet,
        }


def decode_text(data: Union[bytes, str]) -> str:
    """Decode uploaded bytes as UTF-8 (stripping a BOM)."""
    if isinstance(data, str):
        return data[1:] if data.startswith("\ufeff") else data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"File must be UTF-8 encoded: {e}") from e


def _is_blank_row(row: Sequence[str]) -> bool:
    return all(not cell.strip() for cell in row)


# PUBLIC_INTERFACE
def split_csv(text: str) -> Grid:
    """
    Split CSV text into rows of fields.

    State machine rather than a line split: quoted fields may contain commas,
    CR/LF line breaks and doubled quotes (""). Unquoted fields are trimmed,
    quoted fields are kept verbatim. Entirely blank rows are dropped.
    """
    rows: Grid = []
    row: List[str] = []
    buf: List[str] = []
    in_quotes = False
    was_quoted = False
    line = 1
    quote_line = 1
    i = 0
    n = len(text)

    def end_field() -> None:
        nonlocal buf, was_quoted
        value = "".join(buf)
        row.append(value if was_quoted else value.strip())
        buf = []
        was_quoted = False

    def end_row() -> None:
        nonlocal row
        end_field()
        if not _is_blank_row(row):
            rows.append(row)
        row = []

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    buf.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                if ch == "\n":
                    line += 1
                buf.append(ch)
            i += 1
            continue

        if ch == '"':
            if "".join(buf).strip() == "":
                # Opening quote; whitespace before it is not part of the value.
                buf = []
                in_quotes = True
                was_quoted = True
                quote_line = line
            else:
                # Stray quote inside an unquoted field is kept literally.
                buf.append(ch)
        elif ch == ",":
            end_field()
        elif ch == "\r" or ch == "\n":
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            line += 1
            end_row()
        elif was_quoted:
            # Text after a closing quote (e.g. `"a" b`); keep it rather than drop data.
            if not ch.isspace():
                buf.append(ch)
        else:
            buf.append(ch)
        i += 1

    if in_quotes:
        raise ParseError(f"Unterminated quoted field starting on line {quote_line}.")
    if buf or row:
        end_row()
    return rows


def _unique_headers(headers: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    out: List[str] = []
    for idx, h in enumerate(headers, start=1):
        name = h.strip() or f"column_{idx}"
        count = seen.get(name.lower(), 0) + 1
        seen[name.lower()] = count
        out.append(name if count == 1 else f"{name}_{count}")
    return out


# PUBLIC_INTERFACE
def grid_to_rows(grid: Grid, columns: Optional[Sequence[str]] = None) -> List[RawRow]:
    """
    Turn a grid into RawRows.

    The first grid row is the header unless explicit column names are given.
    Short rows are padded with ""; cells beyond the header get column_N keys.
    """
    if not grid:
        return []
    if columns is not None:
        headers = _unique_headers(columns)
        body = grid
    else:
        headers = _unique_headers(grid[0])
        body = grid[1:]

    out: List[RawRow] = []
    for cells in body:
        rec: RawRow = {}
        for c, h in enumerate(headers):
            rec[h] = cells[c] if c < len(cells) else ""
        for c in range(len(headers), len(cells)):
            if cells[c].strip():
                rec[f"column_{c + 1}"] = cells[c]
        out.append(rec)
    return out


# PUBLIC_INTERFACE
def parse_csv(data: Union[bytes, str], columns: Optional[Sequence[str]] = None) -> List[RawRow]:
    """Parse CSV bytes/text into RawRows keyed by header."""
    grid = split_csv(decode_text(data))
    rows = grid_to_rows(grid, columns)
    logger.info("Parsed CSV: %d grid rows, %d records", len(grid), len(rows))
    return rows


def _cell_text(value: Any) -> str:
    """Render a spreadsheet cell as text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _excel_kind(data: bytes) -> str:
    if data.startswith(_XLSX_MAGIC):
        return "xlsx"
    if data.startswith(_XLS_MAGIC):
        return "xls"
    raise ParseError("File is not a valid Excel workbook (.xlsx or .xls).")


def _load_workbook_grids(data: bytes, only: Optional[str] = None) -> Dict[str, Grid]:
    """
    Read sheets into text grids, preserving workbook order.

    When `only` is given, just that sheet is read (ParseError if missing).
    Rows are returned unfiltered so callers can report raw row counts.
    """
    kind = _excel_kind(data)
    grids: Dict[str, Grid] = {}
    if kind == "xlsx":
        import openpyxl
        from openpyxl.utils.exceptions import InvalidFileException

        try:
            wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
            raise ParseError(f"Failed to read Excel file: {e}") from e
        try:
            names = wb.sheetnames
            if only is not None and only not in names:
                raise ParseError(f'Worksheet "{only}" not found in Excel file.')
            for name in names:
                if only is not None and name != only:
                    continue
                grids[name] = [[_cell_text(v) for v in row] for row in wb[name].iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        import xlrd
        from xlrd.compdoc import CompDocError

        try:
            book = xlrd.open_workbook(file_contents=data)
        except (xlrd.XLRDError, CompDocError) as e:
            raise ParseError(f"Failed to read Excel file: {e}") from e
        names = book.sheet_names()
        if only is not None and only not in names:
            raise ParseError(f'Worksheet "{only}" not found in Excel file.')
        for name in names:
            if only is not None and name != only:
                continue
            sheet = book.sheet_by_name(name)
            grid: Grid = []
            for r in range(sheet.nrows):
                row = []
                for c in range(sheet.ncols):
                    cell = sheet.cell(r, c)
                    if cell.ctype == xlrd.XL_CELL_DATE:
                        row.append(_cell_text(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode)))
                    else:
                        row.append(_cell_text(cell.value))
                grid.append(row)
            grids[name] = grid
    return grids


# PUBLIC_INTERFACE
def read_excel_grid(data: bytes, sheet: Optional[str] = None) -> Grid:
    """
    Read one worksheet into a text grid with blank rows removed.

    Defaults to the first sheet. Trailing empty cells are trimmed per row.
    """
    if sheet is None:
        names = list_sheet_names(data)
        if not names:
            raise ParseError("Excel file contains no worksheets.")
        sheet = names[0]
    grid = _load_workbook_grids(data, only=sheet)[sheet]
    out: Grid = []
    for row in grid:
        if _is_blank_row(row):
            continue
        while row and not row[-1].strip():
            row = row[:-1]
        out.append(row)
    logger.info("Read sheet %r: %d raw rows, %d non-blank", sheet, len(grid), len(out))
    return out


def list_sheet_names(data: bytes) -> List[str]:
    kind = _excel_kind(data)
    if kind == "xlsx":
        import openpyxl
        from openpyxl.utils.exceptions import InvalidFileException

        try:
            wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
            raise ParseError(f"Failed to read Excel file: {e}") from e
        try:
            return list(wb.sheetnames)
        finally:
            wb.close()

    import xlrd
    from xlrd.compdoc import CompDocError

    try:
        return list(xlrd.open_workbook(file_contents=data, on_demand=True).sheet_names())
    except (xlrd.XLRDError, CompDocError) as e:
        raise ParseError(f"Failed to read Excel file: {e}") from e


def is_test_case_sheet(name: str) -> bool:
    lowered = name.strip().lower()
    return any(k in lowered for k in _TEST_SHEET_KEYWORDS)


# PUBLIC_INTERFACE
def list_excel_sheets(data: bytes) -> List[SheetInfo]:
    """
    Enumerate workbook sheets with a short preview.

    Sheets whose names look like test case sheets come first, then by name.
    """
    infos: List[SheetInfo] = []
    for name, grid in _load_workbook_grids(data).items():
        non_blank = [r for r in grid if not _is_blank_row(r)]
        preview = [list(r[:8]) for r in non_blank[:3]]
        first = [c.strip().lower() for c in preview[0]] if preview else []
        has_headers = any(k in cell for cell in first for k in _HEADER_KEYWORDS)
        infos.append(
            SheetInfo(
                name=name,
                row_count=len(non_blank),
                has_headers=has_headers,
                preview=preview,
                is_test_case_sheet=is_test_case_sheet(name),
            )
        )
    infos.sort(key=lambda s: (not s.is_test_case_sheet, s.name.lower()))
    return infos


# PUBLIC_INTERFACE
def parse_json(data: Union[bytes, str]) -> List[Any]:
    """
    Parse a JSON import document into its list of raw test case items.

    Items are returned as-is; flatten_json_item() turns each into a RawRow so a
    single malformed item only fails its own row.
    """
    text = decode_text(data)
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e

    if isinstance(doc, list):
        return doc
    if isinstance(doc, dict):
        for key in _JSON_ARRAY_KEYS:
            if isinstance(doc.get(key), list):
                return doc[key]
    raise ParseError(
        "JSON format not recognized. Expected an array of test cases or an object with a testCases/tests array."
    )


_JSON_STEP_KEYS = ("steps", "teststeps", "test_steps")


def json_step_items(item: Any) -> Optional[List[Any]]:
    """The structured step list of a JSON test case object, if it has one."""
    if not isinstance(item, dict):
        return None
    for key, value in item.items():
        if str(key).lower() in _JSON_STEP_KEYS and isinstance(value, list):
            return value
    return None


def _json_step_line(step: Any) -> str:
    if not isinstance(step, dict):
        return _cell_text(step)
    desc = step.get("description") or step.get("action") or step.get("step_description") or ""
    expected = step.get("expected_result") or step.get("expectedResult") or step.get("expected") or ""
    line = _cell_text(desc)
    if str(expected).strip():
        line = f"{line} | Expected: {_cell_text(expected)}"
    return line


# PUBLIC_INTERFACE
def flatten_json_item(item: Any) -> RawRow:
    """
    Flatten one JSON test case object into a RawRow.

    Step lists become one line per step ("desc | Expected: result") for the
    audit's field analysis; the mapper builds the steps themselves from
    json_step_items(). Other lists are comma-joined and nested objects are
    kept as JSON text.
    """
    if not isinstance(item, dict):
        raise TypeError(f"expected a JSON object, got {type(item).__name__}")
    row: RawRow = {}
    for key, value in item.items():
        k = str(key)
        if isinstance(value, list):
            if k.lower() in _JSON_STEP_KEYS:
                row[k] = "\n".join(_json_step_line(s) for s in value)
            else:
                row[k] = ", ".join(_cell_text(v) for v in value if v is not None)
        elif isinstance(value, dict):
            row[k] = json.dumps(value, ensure_ascii=False)
        else:
            row[k] = _cell_text(value)
    return row
