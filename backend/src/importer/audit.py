"""
Import audit reporting.

Pure aggregation over the raw rows, the built cases, the row errors and the
duplicate detection result. The report is immutable once built and can be
rendered as a multi-section CSV for download.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.importer.dedupe import DuplicateDetectionResult, completeness_score
from src.importer.field_mapper import FieldMapper
from src.importer.presets import FieldPreset
from src.importer.records import PRIORITIES, TestCase
from src.importer.tabular import RawRow

LOW_COVERAGE_PERCENT = 50.0
HIGH_DUPLICATE_RATE = 0.3
MANY_FIELDS = 20
MAX_SAMPLES = 3

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no"})
_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2}([ T]\d{2}:\d{2}(:\d{2})?)?|\d{1,2}/\d{1,2}/\d{2,4})$")
_ROW_ERROR = re.compile(r"^Row (\d+):\s*(.*)$", re.DOTALL)


@dataclass(frozen=True)
class FieldStats:
    name: str
    coverage: float
    unique_values: int
    average_length: float
    types: Tuple[str, ...]
    samples: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "coverage": self.coverage,
            "unique_values": self.unique_values,
            "average_length": self.average_length,
            "types": list(self.types),
            "samples": list(self.samples),
        }


@dataclass(frozen=True)
class DataQualityIssue:
    type: str
    field: str
    row_index: int
    value: str
    severity: str
    suggestion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "field": self.field,
            "row_index": self.row_index,
            "value": self.value,
            "severity": self.severity,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class DuplicateGroupSummary:
    signature: str
    size: int
    keep_case_id: str
    keep_case_title: str
    keep_case_score: int
    case_ids: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "size": self.size,
            "keep_case_id": self.keep_case_id,
            "keep_case_title": self.keep_case_title,
            "keep_case_score": self.keep_case_score,
            "case_ids": list(self.case_ids),
        }


@dataclass(frozen=True)
class AuditReport:
    total_rows: int
    valid_rows: int
    invalid_rows: int
    duplicates_found: int
    field_analysis: Tuple[FieldStats, ...]
    data_quality_issues: Tuple[DataQualityIssue, ...]
    recommendations: Tuple[str, ...]
    duplicate_groups: Tuple[DuplicateGroupSummary, ...]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "duplicates_found": self.duplicates_found,
            "field_analysis": [f.to_dict() for f in self.field_analysis],
            "data_quality_issues": [i.to_dict() for i in self.data_quality_issues],
            "recommendations": list(self.recommendations),
            "duplicate_groups": [g.to_dict() for g in self.duplicate_groups],
            "timestamp": self.timestamp,
        }


def value_type(value: str) -> str:
    """Classify a non-empty cell as number, boolean, date or text."""
    text = value.strip()
    if _NUMBER.match(text):
        return "number"
    if text.lower() in _BOOLEAN_TOKENS:
        return "boolean"
    if _DATE.match(text):
        return "date"
    return "text"


def analyze_fields(raw_rows: Sequence[RawRow]) -> List[FieldStats]:
    """Coverage statistics for every distinct key across the raw rows, in first-seen order."""
    names: List[str] = []
    for row in raw_rows:
        for key in row:
            if key not in names:
                names.append(key)

    total = len(raw_rows)
    stats: List[FieldStats] = []
    for name in names:
        values = [str(row.get(name) or "").strip() for row in raw_rows]
        filled = [v for v in values if v]
        types: List[str] = []
        samples: List[str] = []
        for v in filled:
            t = value_type(v)
            if t not in types:
                types.append(t)
            if len(samples) < MAX_SAMPLES and v not in samples:
                samples.append(v)
        stats.append(
            FieldStats(
                name=name,
                coverage=round(len(filled) / total * 100, 1) if total else 0.0,
                unique_values=len(set(filled)),
                average_length=round(sum(len(v) for v in filled) / len(filled), 1) if filled else 0.0,
                types=tuple(types),
                samples=tuple(samples),
            )
        )
    return stats


def _row_issues(raw_rows: Sequence[RawRow], preset: FieldPreset) -> List[DataQualityIssue]:
    mapper = FieldMapper(preset)
    known_priorities = set(preset.normalizer("priority").keys())
    issues: List[DataQualityIssue] = []

    for index, row in enumerate(raw_rows, start=1):
        if not mapper.resolve(row, "title"):
            issues.append(
                DataQualityIssue(
                    type="missing_title",
                    field="title",
                    row_index=index,
                    value="",
                    severity="high",
                    suggestion="Add a 'Test Case' or 'Title' column value for this row.",
                )
            )
        for canonical, label in (
            ("description", "description"),
            ("steps", "test steps"),
            ("expected_result", "expected result"),
        ):
            if not mapper.resolve(row, canonical):
                issues.append(
                    DataQualityIssue(
                        type=f"missing_{canonical}",
                        field=canonical,
                        row_index=index,
                        value="",
                        severity="medium",
                        suggestion=f"Provide a {label} so the case can be executed without guesswork.",
                    )
                )
        priority = mapper.resolve(row, "priority")
        if priority and priority.upper() not in known_priorities and priority.lower() not in PRIORITIES:
            issues.append(
                DataQualityIssue(
                    type="non_standard_priority",
                    field="priority",
                    row_index=index,
                    value=priority,
                    severity="low",
                    suggestion="Use one of Critical, High, Medium or Low (P0-P3 also accepted).",
                )
            )
    return issues


def _error_issues(errors: Sequence[str]) -> List[DataQualityIssue]:
    issues: List[DataQualityIssue] = []
    for error in errors:
        m = _ROW_ERROR.match(error)
        issues.append(
            DataQualityIssue(
                type="mapping_error",
                field="",
                row_index=int(m.group(1)) if m else 0,
                value=m.group(2) if m else error,
                severity="high",
                suggestion="Fix the row so it can be converted, then re-import it.",
            )
        )
    return issues


def _group_summaries(detection: Optional[DuplicateDetectionResult]) -> List[DuplicateGroupSummary]:
    if detection is None:
        return []
    return [
        DuplicateGroupSummary(
            signature=g.signature,
            size=len(g.cases),
            keep_case_id=g.keep_case.id,
            keep_case_title=g.keep_case.title,
            keep_case_score=completeness_score(g.keep_case),
            case_ids=tuple(c.id for c in g.cases),
        )
        for g in detection.exact_duplicates
    ]


def _recommendations(
    fields: Sequence[FieldStats],
    issues: Sequence[DataQualityIssue],
    duplicates_found: int,
    case_count: int,
) -> List[str]:
    recs: List[str] = []
    for f in fields:
        if f.coverage < LOW_COVERAGE_PERCENT:
            recs.append(
                f"Field '{f.name}' is only {f.coverage}% populated. Fill it in at the source or drop the column."
            )
    if case_count and duplicates_found / case_count > HIGH_DUPLICATE_RATE:
        recs.append(
            f"{duplicates_found} of {case_count} imported cases are duplicates. Review the source for copy-paste rows."
        )
    if len(fields) > MANY_FIELDS:
        recs.append(
            f"The source has {len(fields)} columns. Focus the field mapping on the columns that matter for test cases."
        )
    if any(i.severity == "high" for i in issues):
        recs.append("High-severity issues were found. Review them before importing into the library.")
    return recs


# PUBLIC_INTERFACE
def build_audit_report(
    raw_rows: Sequence[RawRow],
    built_cases: Sequence[TestCase],
    errors: Sequence[str],
    detection: Optional[DuplicateDetectionResult],
    preset: FieldPreset,
) -> AuditReport:
    """
    Aggregate field coverage, data-quality issues and duplicate findings.

    built_cases is the list before duplicate removal, so valid_rows counts
    every row that produced a case.
    """
    fields = analyze_fields(raw_rows)
    issues = _row_issues(raw_rows, preset) + _error_issues(errors)
    duplicates_found = sum(len(g.cases) - 1 for g in detection.exact_duplicates) if detection else 0
    total = len(raw_rows)
    valid = len(built_cases)

    return AuditReport(
        total_rows=total,
        valid_rows=valid,
        invalid_rows=max(total - valid, 0),
        duplicates_found=duplicates_found,
        field_analysis=tuple(fields),
        data_quality_issues=tuple(issues),
        recommendations=tuple(_recommendations(fields, issues, duplicates_found, valid)),
        duplicate_groups=tuple(_group_summaries(detection)),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# PUBLIC_INTERFACE
def audit_report_to_csv(report: AuditReport) -> str:
    """Render the report as CSV text: summary, field analysis, issues, duplicate groups, recommendations."""
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")

    w.writerow(["Import Audit Report"])
    w.writerow(["Generated", report.timestamp])
    w.writerow([])
    w.writerow(["Summary"])
    w.writerow(["Metric", "Value"])
    w.writerow(["Total Rows", report.total_rows])
    w.writerow(["Valid Rows", report.valid_rows])
    w.writerow(["Invalid Rows", report.invalid_rows])
    w.writerow(["Duplicates Found", report.duplicates_found])
    w.writerow([])

    w.writerow(["Field Analysis"])
    w.writerow(["Field", "Coverage %", "Unique Values", "Average Length", "Types", "Samples"])
    for f in report.field_analysis:
        w.writerow([f.name, f.coverage, f.unique_values, f.average_length, "; ".join(f.types), "; ".join(f.samples)])
    w.writerow([])

    w.writerow(["Data Quality Issues"])
    w.writerow(["Row", "Type", "Field", "Severity", "Value", "Suggestion"])
    for i in report.data_quality_issues:
        w.writerow([i.row_index, i.type, i.field, i.severity, i.value, i.suggestion])
    w.writerow([])

    w.writerow(["Duplicate Groups"])
    w.writerow(["Signature", "Size", "Keep Case ID", "Keep Case Title", "Completeness Score", "Case IDs"])
    for g in report.duplicate_groups:
        w.writerow([g.signature[:16], g.size, g.keep_case_id, g.keep_case_title, g.keep_case_score, "; ".join(g.case_ids)])
    w.writerow([])

    w.writerow(["Recommendations"])
    for n, rec in enumerate(report.recommendations, start=1):
        w.writerow([n, rec])

    return buf.getvalue()
