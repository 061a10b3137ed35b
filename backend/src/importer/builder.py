"""
Test case assembly and module-scoped ID generation.

IDs look like TC_IMPORT_AUTH_001. The counter for a module prefix continues
from the highest matching ID among the caller's existing cases and the IDs
already handed out in the current run, so repeated imports into the same
collection never collide.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from src.importer.field_mapper import MappedRow
from src.importer.records import (
    DEFAULT_MODULE,
    DEFAULT_PRIORITY,
    DEFAULT_PROJECT,
    DEFAULT_STATUS,
    PRIORITIES,
    STATUSES,
    TestCase,
)

ID_PREFIX = "TC_IMPORT"
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def module_id_prefix(module: Optional[str]) -> str:
    """'User Auth' -> 'USERAUTH'; empty or non-ASCII-only -> 'GEN'."""
    cleaned = _NON_ALNUM.sub("", module or "").upper()[:8]
    return cleaned or "GEN"


def _id_pattern(prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"^{ID_PREFIX}_{re.escape(prefix)}_(\d+)$")


class IdSequence:
    """
    Per-run ID allocator.

    Seeded from a read-only collection of existing IDs; the counters live on
    this object only, never on module state.
    """

    def __init__(self, existing_ids: Iterable[str] = ()):
        self._ids: List[str] = [i for i in existing_ids if i]
        self._next: Dict[str, int] = {}

    @classmethod
    def from_existing(cls, existing_cases: Iterable[TestCase], other_ids: Iterable[str] = ()) -> "IdSequence":
        return cls([*other_ids, *(c.id for c in existing_cases)])

    def _max_for(self, prefix: str) -> int:
        pattern = _id_pattern(prefix)
        highest = 0
        for existing in self._ids:
            m = pattern.match(existing)
            if m:
                highest = max(highest, int(m.group(1)))
        return highest

    def next(self, module: Optional[str]) -> str:
        prefix = module_id_prefix(module)
        if prefix not in self._next:
            self._next[prefix] = self._max_for(prefix) + 1
        n = self._next[prefix]
        self._next[prefix] = n + 1
        return f"{ID_PREFIX}_{prefix}_{n:03d}"


# PUBLIC_INTERFACE
def next_test_case_id(module: Optional[str], existing_ids: Iterable[str]) -> str:
    """One-off ID for a module given the IDs already in use."""
    return IdSequence(existing_ids).next(module)


def _enum_or_default(value, allowed, default: str, extra: Dict[str, str], key: str) -> str:
    token = str(value or "").strip()
    lowered = token.lower()
    if lowered in allowed:
        return lowered
    if token:
        extra[key] = token
    return default


def _flag(value, extra: Dict[str, str], key: str) -> bool:
    if isinstance(value, bool):
        return value
    token = str(value or "").strip()
    if token:
        extra[key] = token
    return False


# PUBLIC_INTERFACE
def build_test_case(
    mapped: MappedRow,
    ids: IdSequence,
    project_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TestCase:
    """
    Assemble the canonical TestCase for a mapped row.

    Priority/status tokens outside the canonical sets fall back to medium/draft
    and the raw token is kept in extra (priority_raw, status_raw).
    """
    stamp = now or datetime.now(timezone.utc)
    extra = dict(mapped.extra)
    module = mapped.module.strip() or DEFAULT_MODULE
    priority = _enum_or_default(mapped.priority, PRIORITIES, DEFAULT_PRIORITY, extra, "priority_raw")
    status = _enum_or_default(mapped.status, STATUSES, DEFAULT_STATUS, extra, "status_raw")

    return TestCase(
        id=ids.next(mapped.module),
        title=mapped.title,
        module=module,
        description=mapped.description,
        preconditions=mapped.preconditions,
        priority=priority,
        status=status,
        tags=list(mapped.tags),
        test_steps=list(mapped.steps),
        test_data=mapped.test_data,
        expected_result=mapped.expected_result,
        test_result=str(mapped.test_result or ""),
        qa=mapped.qa,
        remarks=mapped.remarks,
        project_id=project_id or DEFAULT_PROJECT,
        created_by="importer",
        created_at=stamp,
        updated_at=stamp,
        source_id=mapped.source_id or None,
        is_regression=_flag(mapped.regression, extra, "regression_raw"),
        is_automation=_flag(mapped.automation, extra, "automation_raw"),
        extra=extra,
    )
