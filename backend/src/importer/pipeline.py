"""
Bulk test case import pipeline.

raw file -> tabular parser -> layout detection (csv/excel) -> field mapper
(+ step parser) -> builder -> duplicate detection -> audit report.

Supports:
- .csv (UTF-8, optional BOM)
- .xlsx (openpyxl) and .xls (xlrd), optionally a selected sheet
- .json (array, or object with testCases/tests)
- horizontal and vertical key-value sheet layouts
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from src.importer.audit import AuditReport, audit_report_to_csv, build_audit_report
from src.importer.builder import IdSequence, build_test_case
from src.importer.dedupe import DuplicateDetectionResult, detect_duplicates
from src.importer.field_mapper import FieldMapper
from src.importer.layout import Layout, detect_layout, group_vertical_rows
from src.importer.presets import FieldPreset, get_preset
from src.importer.records import TestCase
from src.importer.tabular import (
    Grid,
    ParseError,
    RawRow,
    SheetInfo,
    decode_text,
    flatten_json_item,
    grid_to_rows,
    json_step_items,
    list_excel_sheets,
    parse_json,
    read_excel_grid,
    split_csv,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".csv": "csv",
    ".xlsx": "excel",
    ".xls": "excel",
    ".json": "json",
}


@dataclass
class ImportOptions:
    """
    Caller-supplied knobs for one import run.

    existing_test_cases are the stored cases duplicates are checked against;
    existing_ids are every ID already in use, so generated IDs stay unique
    beyond the cases being compared.
    """

    skip_duplicates: bool = False
    validate_required: bool = False
    default_project: Optional[str] = None
    selected_sheet: Optional[str] = None
    existing_test_cases: Sequence[Union[TestCase, Dict[str, Any]]] = ()
    existing_ids: Sequence[str] = ()
    enable_audit: bool = True
    deduplication_mode: str = "smart"
    generate_audit_csv: bool = False
    preset_name: Optional[str] = None


@dataclass
class ImportResult:
    success: bool
    test_cases: List[TestCase] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: int = 0
    audit_report: Optional[AuditReport] = None
    duplicate_detection: Optional[DuplicateDetectionResult] = None
    audit_csv: Optional[str] = None
    layout: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "test_cases": [c.to_dict() for c in self.test_cases],
            "errors": list(self.errors),
            "skipped": self.skipped,
            "audit_report": self.audit_report.to_dict() if self.audit_report else None,
            "duplicate_detection": self.duplicate_detection.to_dict() if self.duplicate_detection else None,
            "audit_csv": self.audit_csv,
            "layout": self.layout,
        }


def detect_format(filename: str) -> str:
    """Map a filename extension to csv | excel | json (ParseError otherwise)."""
    name = (filename or "").lower()
    for ext, kind in SUPPORTED_EXTENSIONS.items():
        if name.endswith(ext):
            return kind
    raise ParseError(
        f"Unsupported file type '{filename}'. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
    )


def _existing_records(existing: Sequence[Union[TestCase, Dict[str, Any]]]) -> List[TestCase]:
    # Stored cases may arrive as plain dicts (e.g. an exported library).
    return [c if isinstance(c, TestCase) else TestCase.from_dict(c) for c in existing]


def _already_stored(detection: DuplicateDetectionResult, existing: Sequence[TestCase], mode: str) -> int:
    """Fresh cases dropped because they match a stored record."""
    if mode == "off":
        return 0
    stored = {id(c) for c in existing}
    return sum(len(g.cases) - 1 for g in detection.exact_duplicates if id(g.keep_case) in stored)


def _grid_rows(grid: Grid) -> Tuple[List[RawRow], Layout]:
    layout = detect_layout(grid)
    if layout is Layout.VERTICAL:
        return group_vertical_rows(grid), layout
    return grid_to_rows(grid), layout


def _load_rows(data: Union[bytes, str], kind: str, options: ImportOptions) -> Tuple[List[Any], Optional[Layout]]:
    """Structural parse. JSON items come back unflattened so each one fails on its own."""
    if kind == "json":
        return parse_json(data), None
    if kind == "excel":
        if isinstance(data, str):
            raise ParseError("Excel files must be uploaded as binary data.")
        grid = read_excel_grid(data, sheet=options.selected_sheet)
    else:
        grid = split_csv(decode_text(data))
    return _grid_rows(grid)


# PUBLIC_INTERFACE
def import_test_cases(
    data: Union[bytes, str],
    filename: str,
    options: Optional[ImportOptions] = None,
    preset: Optional[FieldPreset] = None,
) -> ImportResult:
    """
    Run the whole import for one file.

    Structural failures (bad quoting, corrupt workbook, unknown JSON shape,
    unsupported extension) return success=False with a single error. Row
    failures are collected as "Row N: message" and the import continues.
    success is True when at least one test case was produced.
    """
    options = options or ImportOptions()
    preset = preset or get_preset(options.preset_name)

    try:
        kind = detect_format(filename)
        items, layout = _load_rows(data, kind, options)
    except ParseError as e:
        logger.warning("Import of %r failed: %s", filename, e)
        return ImportResult(success=False, errors=[str(e)])

    if not items:
        return ImportResult(success=False, errors=["No data rows found in file"], layout=layout.value if layout else None)

    mapper = FieldMapper(preset)
    existing = _existing_records(options.existing_test_cases)
    ids = IdSequence.from_existing(existing, options.existing_ids)
    raw_rows: List[RawRow] = []
    built: List[TestCase] = []
    errors: List[str] = []
    skipped = 0

    for index, item in enumerate(items, start=1):
        try:
            row = flatten_json_item(item) if kind == "json" else item
            raw_rows.append(row)
            mapped = mapper.map_row(
                row,
                validate_required=options.validate_required,
                step_items=json_step_items(item) if kind == "json" else None,
            )
            if mapped is None:
                skipped += 1
                continue
            case = build_test_case(mapped, ids, project_id=options.default_project)
        except Exception as e:
            logger.warning("Row %d of %r could not be imported: %s", index, filename, e)
            errors.append(f"Row {index}: {e}")
            continue
        logger.debug("Row %d -> %s (%d steps)", index, case.id, len(case.test_steps))
        built.append(case)

    detection = detect_duplicates(
        built,
        options.deduplication_mode,
        existing=existing if options.skip_duplicates else None,
    )
    skipped += _already_stored(detection, existing, options.deduplication_mode)

    report: Optional[AuditReport] = None
    audit_csv: Optional[str] = None
    if options.enable_audit:
        report = build_audit_report(raw_rows, built, errors, detection, preset)
        if options.generate_audit_csv:
            audit_csv = audit_report_to_csv(report)

    test_cases = detection.unique_cases
    logger.info(
        "Imported %r: %d rows, %d cases, %d skipped, %d errors",
        filename,
        len(items),
        len(test_cases),
        skipped,
        len(errors),
    )
    return ImportResult(
        success=len(test_cases) > 0,
        test_cases=test_cases,
        errors=errors,
        skipped=skipped,
        audit_report=report,
        duplicate_detection=detection,
        audit_csv=audit_csv,
        layout=layout.value if layout else None,
    )


# PUBLIC_INTERFACE
def list_sheets(data: bytes) -> List[SheetInfo]:
    """Enumerate workbook sheets so the caller can choose selected_sheet."""
    return list_excel_sheets(data)
