"""
Canonical test case records produced by the import pipeline.

TestCase mirrors the shape stored by the application; TestStep keeps the
execution order of a case. Both convert to/from plain dicts so callers can
hand in previously persisted cases (for ID scoping and cross-import dedup).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PRIORITIES = ("low", "medium", "high", "critical")
STATUSES = ("draft", "active", "review", "deprecated")

DEFAULT_MODULE = "General"
DEFAULT_PRIORITY = "medium"
DEFAULT_STATUS = "draft"
DEFAULT_PROJECT = "default"


@dataclass
class TestStep:
    """One ordered step of a test case."""

    __test__ = False  # not a pytest class

    step: int
    description: str
    expected_result: str = ""
    test_data: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "description": self.description,
            "expected_result": self.expected_result,
            "test_data": self.test_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int) -> "TestStep":
        return cls(
            step=int(data.get("step") or position),
            description=str(data.get("description") or data.get("action") or ""),
            expected_result=str(data.get("expected_result") or data.get("expectedResult") or data.get("expected") or ""),
            test_data=str(data.get("test_data") or data.get("testData") or ""),
        )


@dataclass
class TestCase:
    """Canonical imported test case."""

    __test__ = False

    id: str
    title: str
    module: str = DEFAULT_MODULE
    description: str = ""
    preconditions: str = ""
    priority: str = DEFAULT_PRIORITY
    status: str = DEFAULT_STATUS
    tags: List[str] = field(default_factory=list)
    test_steps: List[TestStep] = field(default_factory=list)
    test_data: str = ""
    expected_result: str = ""
    test_result: str = ""
    qa: str = ""
    remarks: str = ""
    project_id: str = DEFAULT_PROJECT
    created_by: str = "importer"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_id: Optional[str] = None
    is_regression: bool = False
    is_automation: bool = False
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable dict."""
        return {
            "id": self.id,
            "title": self.title,
            "module": self.module,
            "description": self.description,
            "preconditions": self.preconditions,
            "priority": self.priority,
            "status": self.status,
            "tags": list(self.tags),
            "test_steps": [s.to_dict() for s in self.test_steps],
            "test_data": self.test_data,
            "expected_result": self.expected_result,
            "test_result": self.test_result,
            "qa": self.qa,
            "remarks": self.remarks,
            "project_id": self.project_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "source_id": self.source_id,
            "is_regression": self.is_regression,
            "is_automation": self.is_automation,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestCase":
        """
        Rebuild a TestCase from a stored dict.

        Accepts both snake_case keys and the camelCase keys used by older exports.
        """
        steps_raw = data.get("test_steps") or data.get("testSteps") or []
        created = _parse_dt(data.get("created_at") or data.get("createdAt"))
        updated = _parse_dt(data.get("updated_at") or data.get("updatedAt")) or created
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or data.get("testCase") or ""),
            module=str(data.get("module") or data.get("category") or DEFAULT_MODULE),
            description=str(data.get("description") or ""),
            preconditions=str(data.get("preconditions") or ""),
            priority=str(data.get("priority") or DEFAULT_PRIORITY),
            status=str(data.get("status") or DEFAULT_STATUS),
            tags=[str(t) for t in (data.get("tags") or [])],
            test_steps=[TestStep.from_dict(s, i) for i, s in enumerate(steps_raw, start=1) if isinstance(s, dict)],
            test_data=str(data.get("test_data") or data.get("testData") or ""),
            expected_result=str(data.get("expected_result") or data.get("expectedResult") or ""),
            test_result=str(data.get("test_result") or data.get("testResult") or ""),
            qa=str(data.get("qa") or ""),
            remarks=str(data.get("remarks") or ""),
            project_id=str(data.get("project_id") or data.get("projectId") or DEFAULT_PROJECT),
            created_by=str(data.get("created_by") or data.get("createdBy") or "importer"),
            created_at=created or datetime.now(timezone.utc),
            updated_at=updated or datetime.now(timezone.utc),
            source_id=data.get("source_id"),
            is_regression=bool(data.get("is_regression", False)),
            is_automation=bool(data.get("is_automation", False)),
            extra={str(k): str(v) for k, v in (data.get("extra") or {}).items()},
        )


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
