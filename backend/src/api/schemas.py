"""Pydantic models for API request/response documentation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TestStepOut(BaseModel):
    step: int = Field(..., ge=1, description="1-based execution order.")
    description: str = Field(..., description="Action to perform.")
    expected_result: str = Field("", description="Expected outcome of this step.")
    test_data: str = Field("", description="Input data for this step.")


class TestCaseOut(BaseModel):
    id: str = Field(..., description="Generated id, TC_IMPORT_{MODULE}_{NNN}.")
    title: str = Field(..., description="Test case title.")
    module: str = Field(..., description="Module/category (defaults to 'General').")
    description: str = Field("", description="Free-text description.")
    preconditions: str = Field("", description="Preconditions/prerequisites.")
    priority: str = Field(..., description="low | medium | high | critical.")
    status: str = Field(..., description="draft | active | review | deprecated.")
    tags: List[str] = Field(default_factory=list, description="Tags and requirement references.")
    test_steps: List[TestStepOut] = Field(..., description="Ordered steps; never empty.")
    test_data: str = Field("", description="Case-level test data.")
    expected_result: str = Field("", description="Case-level expected result.")
    test_result: str = Field("", description="Last recorded execution result.")
    qa: str = Field("", description="QA owner.")
    remarks: str = Field("", description="Remarks/notes.")
    project_id: str = Field(..., description="Owning project.")
    created_by: str = Field(..., description="Creator, 'importer' for imported cases.")
    created_at: datetime = Field(..., description="Creation timestamp (UTC).")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC).")
    source_id: Optional[str] = Field(None, description="Identifier found in the source file, if any.")
    is_regression: bool = Field(False, description="Regression flag.")
    is_automation: bool = Field(False, description="Automation flag.")
    extra: Dict[str, str] = Field(default_factory=dict, description="Preset fields without a canonical slot.")


class DuplicateGroupOut(BaseModel):
    signature: str = Field(..., description="SHA-256 exact signature.")
    cases: List[TestCaseOut] = Field(..., description="Members of the group (2 or more).")
    keep_case: TestCaseOut = Field(..., description="Most complete member; the one that is kept.")
    duplicate_type: str = Field("exact", description="Always 'exact'.")


class SimilarGroupOut(BaseModel):
    cases: List[TestCaseOut] = Field(..., description="Near-duplicate cases for review.")
    similarity_score: float = Field(..., ge=0, le=1, description="Mean pairwise similarity.")
    differences: List[str] = Field(default_factory=list, description="Title/priority/module deltas.")


class DeduplicationStatsOut(BaseModel):
    original_count: int = Field(..., description="Cases before deduplication.")
    duplicates_removed: int = Field(..., description="Cases dropped as exact duplicates.")
    final_count: int = Field(..., description="Cases after deduplication.")
    duplicate_rate: float = Field(..., description="duplicates_removed / original_count.")


class DuplicateDetectionOut(BaseModel):
    exact_duplicates: List[DuplicateGroupOut] = Field(default_factory=list)
    similar_cases: List[SimilarGroupOut] = Field(default_factory=list)
    unique_cases: List[TestCaseOut] = Field(default_factory=list)
    deduplication_stats: DeduplicationStatsOut


class FieldStatsOut(BaseModel):
    name: str = Field(..., description="Raw source column name.")
    coverage: float = Field(..., description="Percent of rows with a value.")
    unique_values: int = Field(..., description="Distinct non-empty values.")
    average_length: float = Field(..., description="Average value length.")
    types: List[str] = Field(default_factory=list, description="Observed types: number/boolean/date/text.")
    samples: List[str] = Field(default_factory=list, description="Up to 3 sample values.")


class DataQualityIssueOut(BaseModel):
    type: str = Field(..., description="Issue type, e.g. missing_title.")
    field: str = Field(..., description="Canonical field concerned.")
    row_index: int = Field(..., description="1-based row number.")
    value: str = Field("", description="Offending value, if any.")
    severity: str = Field(..., description="high | medium | low.")
    suggestion: str = Field(..., description="How to fix it.")


class DuplicateGroupSummaryOut(BaseModel):
    signature: str
    size: int
    keep_case_id: str
    keep_case_title: str
    keep_case_score: int
    case_ids: List[str] = Field(default_factory=list)


class AuditReportOut(BaseModel):
    total_rows: int = Field(..., description="Raw data rows read.")
    valid_rows: int = Field(..., description="Rows that produced a test case.")
    invalid_rows: int = Field(..., description="Rows skipped or failed.")
    duplicates_found: int = Field(..., description="Exact duplicates detected.")
    field_analysis: List[FieldStatsOut] = Field(default_factory=list)
    data_quality_issues: List[DataQualityIssueOut] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    duplicate_groups: List[DuplicateGroupSummaryOut] = Field(default_factory=list)
    timestamp: datetime = Field(..., description="Report creation time (UTC).")


class ImportTestCasesResponse(BaseModel):
    success: bool = Field(..., description="True when at least one test case was produced.")
    test_cases: List[TestCaseOut] = Field(default_factory=list, description="Imported (deduplicated) test cases.")
    errors: List[str] = Field(default_factory=list, description="Structural or 'Row N: ...' errors.")
    skipped: int = Field(0, description="Rows that were not test cases (no title/id) or matched a stored case.")
    persisted: int = Field(0, description="Test cases written to the database.")
    layout: Optional[str] = Field(None, description="Detected sheet layout: horizontal | vertical.")
    audit_report: Optional[AuditReportOut] = Field(None, description="Audit report when enabled.")
    duplicate_detection: Optional[DuplicateDetectionOut] = Field(None, description="Duplicate detection result.")
    audit_csv: Optional[str] = Field(None, description="Audit report as CSV text when requested.")


class SheetInfoOut(BaseModel):
    name: str = Field(..., description="Worksheet name.")
    row_count: int = Field(..., description="Non-blank rows.")
    has_headers: bool = Field(..., description="First row looks like a header row.")
    preview: List[List[str]] = Field(default_factory=list, description="First 3 rows.")
    is_test_case_sheet: bool = Field(..., description="Sheet name suggests test cases.")


class SheetsResponse(BaseModel):
    sheets: List[SheetInfoOut] = Field(..., description="Sheets, likely test case sheets first.")


class TestCaseListItem(BaseModel):
    id: str = Field(..., description="Test case id.")
    title: str = Field(..., description="Title.")
    module: str = Field(..., description="Module.")
    priority: str = Field(..., description="Priority.")
    status: str = Field(..., description="Status.")
    steps_count: int = Field(..., description="Number of steps.")
    created_at: datetime = Field(..., description="Creation timestamp (UTC).")


class TestCasesPageResponse(BaseModel):
    items: List[TestCaseListItem] = Field(..., description="Page items.")
    total: int = Field(..., description="Total number of matching test cases.")
    page: int = Field(..., description="1-based page number.")
    page_size: int = Field(..., description="Page size.")
    filters: Any = Field(..., description="Echo of applied filters.")
