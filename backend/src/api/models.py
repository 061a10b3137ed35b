"""
SQLAlchemy ORM models for imported test cases.

Schema:
- imported_test_cases(id PK, project_id, source_id, title, module, description, preconditions,
                      priority, status, steps TEXT, tags TEXT, test_data, expected_result,
                      test_result, qa, remarks, is_regression, is_automation, extra TEXT,
                      created_by, created_at, updated_at)

Note: steps/tags/extra are stored as JSON text for portability/simplicity.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.importer.records import TestCase, TestStep


def dumps_json_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def loads_json_text(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy declarative models."""


class ImportedTestCase(Base):
    """A test case produced by the bulk importer."""

    __tablename__ = "imported_test_cases"

    # Generated TC_IMPORT_{MODULE}_{NNN} id; never reassigned.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    module: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preconditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    # JSON text of [{step, description, expected_result, test_data}, ...].
    steps: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # JSON text of array of tag strings.
    tags: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    test_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    test_result: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    qa: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_regression: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_automation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extra: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False, default="importer")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_imported_test_cases_title", "title"),)

    @classmethod
    def from_record(cls, case: TestCase) -> "ImportedTestCase":
        return cls(
            id=case.id,
            project_id=case.project_id,
            source_id=case.source_id,
            title=case.title,
            module=case.module,
            description=case.description,
            preconditions=case.preconditions,
            priority=case.priority,
            status=case.status,
            steps=dumps_json_text([s.to_dict() for s in case.test_steps]),
            tags=dumps_json_text(list(case.tags)),
            test_data=case.test_data,
            expected_result=case.expected_result,
            test_result=case.test_result,
            qa=case.qa,
            remarks=case.remarks,
            is_regression=case.is_regression,
            is_automation=case.is_automation,
            extra=dumps_json_text(dict(case.extra)),
            created_by=case.created_by,
            created_at=case.created_at,
            updated_at=case.updated_at,
        )

    def to_record(self) -> TestCase:
        steps = loads_json_text(self.steps, [])
        return TestCase(
            id=self.id,
            title=self.title,
            module=self.module,
            description=self.description or "",
            preconditions=self.preconditions or "",
            priority=self.priority,
            status=self.status,
            tags=[str(t) for t in loads_json_text(self.tags, [])],
            test_steps=[TestStep.from_dict(s, i) for i, s in enumerate(steps, start=1) if isinstance(s, dict)],
            test_data=self.test_data or "",
            expected_result=self.expected_result or "",
            test_result=self.test_result or "",
            qa=self.qa or "",
            remarks=self.remarks or "",
            project_id=self.project_id,
            created_by=self.created_by,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
            source_id=self.source_id,
            is_regression=bool(self.is_regression),
            is_automation=bool(self.is_automation),
            extra={str(k): str(v) for k, v in loads_json_text(self.extra, {}).items()},
        )
