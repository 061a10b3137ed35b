"""
Routes for bulk test case import and retrieval.

Endpoints:
- POST /import/testcases
- POST /import/sheets
- GET /projects/{project_id}/testcases
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from src.api.db import get_db
from src.api.models import ImportedTestCase, loads_json_text
from src.api.schemas import ImportTestCasesResponse, SheetsResponse, TestCasesPageResponse
from src.importer.dedupe import MODES
from src.importer.pipeline import SUPPORTED_EXTENSIONS, ImportOptions, import_test_cases, list_sheets
from src.importer.presets import UnknownPresetError, get_preset
from src.importer.records import DEFAULT_PROJECT
from src.importer.tabular import ParseError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Import"])


def _max_upload_bytes() -> int:
    raw = os.getenv("IMPORT_MAX_UPLOAD_BYTES", "").strip()
    return int(raw) if raw.isdigit() else 10 * 1024 * 1024


async def _read_upload(file: UploadFile) -> bytes:
    raw = await file.read()
    if len(raw) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    limit = _max_upload_bytes()
    if len(raw) > limit:
        raise HTTPException(status_code=413, detail=f"File too large. Max size is {limit} bytes.")
    return raw


def _require_supported_filename(filename: str) -> None:
    if not any(filename.lower().endswith(ext) for ext in SUPPORTED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Upload {', '.join(sorted(SUPPORTED_EXTENSIONS))}.",
        )


@router.post(
    "/import/testcases",
    response_model=ImportTestCasesResponse,
    summary="Import test cases (CSV/XLSX/XLS/JSON) and persist them",
    description=(
        "Accepts multipart/form-data with file field 'file' plus import options as form fields. "
        "Parses the file, maps columns to test case fields, removes exact duplicates, "
        "persists the resulting test cases for the project and returns them with the audit report."
    ),
    operation_id="import_testcases",
)
async def import_testcases(
    file: UploadFile = File(..., description="CSV, XLSX, XLS or JSON file under field name 'file'."),
    project_id: str = Form(DEFAULT_PROJECT, description="Project the test cases belong to."),
    preset: Optional[str] = Form(None, description="Field preset name (standard, qa_department)."),
    sheet: Optional[str] = Form(None, description="Worksheet to import (Excel only); defaults to the first."),
    deduplication_mode: str = Form("smart", description="off | strict | smart."),
    skip_duplicates: bool = Form(False, description="Also drop cases identical to ones already stored."),
    validate_required: bool = Form(False, description="Skip rows without a title."),
    enable_audit: bool = Form(True, description="Build the audit report."),
    audit_csv: bool = Form(False, description="Include the audit report as CSV text."),
    db: Session = Depends(get_db),
) -> ImportTestCasesResponse:
    """
    Import a test case file into a project.

    Structural problems in the file come back as success=false with the error;
    request problems (empty/oversized upload, unknown preset or mode) are 4xx.
    """
    _require_supported_filename(file.filename or "")
    raw = await _read_upload(file)

    mode = deduplication_mode.strip().lower()
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"Unknown deduplication mode. Use one of: {', '.join(MODES)}.")
    try:
        field_preset = get_preset(preset)
    except UnknownPresetError as e:
        raise HTTPException(status_code=400, detail=str(e.args[0])) from e

    existing = [
        row.to_record()
        for row in db.execute(select(ImportedTestCase).where(ImportedTestCase.project_id == project_id)).scalars()
    ]
    # IDs are unique across projects, so the counter sees every stored ID.
    existing_ids = list(db.execute(select(ImportedTestCase.id)).scalars())
    options = ImportOptions(
        skip_duplicates=skip_duplicates,
        validate_required=validate_required,
        default_project=project_id,
        selected_sheet=sheet or None,
        existing_test_cases=existing,
        existing_ids=existing_ids,
        enable_audit=enable_audit,
        deduplication_mode=mode,
        generate_audit_csv=audit_csv,
        preset_name=field_preset.name,
    )
    result = import_test_cases(raw, file.filename or "", options=options, preset=field_preset)

    for case in result.test_cases:
        db.add(ImportedTestCase.from_record(case))
    db.commit()
    logger.info("Persisted %d test cases for project %r", len(result.test_cases), project_id)

    payload = result.to_dict()
    payload["persisted"] = len(result.test_cases)
    return ImportTestCasesResponse(**payload)


@router.post(
    "/import/sheets",
    response_model=SheetsResponse,
    summary="List worksheets of an Excel file",
    description="Returns per-sheet row count, header detection, a 3-row preview and a test case sheet hint.",
    operation_id="list_import_sheets",
)
async def list_import_sheets(
    file: UploadFile = File(..., description="XLSX or XLS file under field name 'file'."),
) -> SheetsResponse:
    """Enumerate sheets so the client can pick one before importing."""
    raw = await _read_upload(file)
    try:
        sheets = list_sheets(raw)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return SheetsResponse(sheets=[s.to_dict() for s in sheets])


@router.get(
    "/projects/{project_id}/testcases",
    response_model=TestCasesPageResponse,
    summary="List imported test cases for a project (paginated, filterable)",
    description=(
        "Returns paginated test cases for a project. "
        "Supports filters: module, priority, search (matches title/description/id)."
    ),
    operation_id="list_project_testcases",
)
def list_project_testcases(
    project_id: str,
    page: int = Query(1, ge=1, description="1-based page number."),
    page_size: int = Query(20, ge=1, le=200, description="Page size (max 200)."),
    module: Optional[str] = Query(None, description="Filter by exact module."),
    priority: Optional[str] = Query(None, description="Filter by exact priority."),
    search: Optional[str] = Query(None, min_length=1, description="Search in title/description/id (contains, case-insensitive)."),
    db: Session = Depends(get_db),
) -> TestCasesPageResponse:
    """Paginated retrieval of imported test cases with basic filters."""
    filters = [ImportedTestCase.project_id == project_id]
    if module:
        filters.append(ImportedTestCase.module == module)
    if priority:
        filters.append(ImportedTestCase.priority == priority.lower())
    if search:
        like = f"%{search}%"
        filters.append(
            or_(
                ImportedTestCase.title.ilike(like),
                ImportedTestCase.description.ilike(like),
                ImportedTestCase.id.ilike(like),
            )
        )

    total = db.execute(select(func.count(ImportedTestCase.id)).where(*filters)).scalar_one()

    stmt = (
        select(ImportedTestCase)
        .where(*filters)
        .order_by(ImportedTestCase.created_at.desc(), ImportedTestCase.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items: List[ImportedTestCase] = list(db.execute(stmt).scalars().all())

    return TestCasesPageResponse(
        items=[
            {
                "id": tc.id,
                "title": tc.title,
                "module": tc.module,
                "priority": tc.priority,
                "status": tc.status,
                "steps_count": len(loads_json_text(tc.steps, [])),
                "created_at": tc.created_at,
            }
            for tc in items
        ],
        total=int(total or 0),
        page=page,
        page_size=page_size,
        filters={"project_id": project_id, "module": module, "priority": priority, "search": search},
    )
