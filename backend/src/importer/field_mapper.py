"""
Field mapping and value normalization.

Resolves source columns to canonical test case fields through a FieldPreset's
alias lists, normalizes enumerated values, and hands the steps column to the
step parser. Output is a MappedRow, the intermediate record the builder turns
into a TestCase.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from src.importer.presets import FieldPreset
from src.importer.records import TestStep
from src.importer.steps import parse_steps, steps_from_items
from src.importer.tabular import RawRow

logger = logging.getLogger(__name__)

# Shorter aliases only match a header exactly ("id", "qa", "tag").
_MIN_SUBSTRING_LEN = 4

_TAG_DELIMITERS = re.compile(r"[,;|]")

# Canonical fields with a slot on MappedRow; any other preset field ends up in extra.
_CORE_FIELDS = frozenset(
    {
        "id",
        "title",
        "module",
        "steps",
        "description",
        "preconditions",
        "expected_result",
        "test_data",
        "test_result",
        "status",
        "priority",
        "qa",
        "remarks",
        "tags",
        "requirements",
        "regression",
        "automation",
    }
)


@dataclass
class MappedRow:
    """Canonical field values resolved from one raw row."""

    source_id: str
    title: str
    module: str = ""
    description: str = ""
    preconditions: str = ""
    priority: str = ""
    status: str = ""
    test_result: str = ""
    expected_result: str = ""
    test_data: str = ""
    qa: str = ""
    remarks: str = ""
    tags: List[str] = field(default_factory=list)
    steps: List[TestStep] = field(default_factory=list)
    regression: Any = ""
    automation: Any = ""
    extra: Dict[str, str] = field(default_factory=dict)


def normalize_value(value: Optional[str], table: Mapping[str, Any]) -> Any:
    """
    Look up a trimmed, upper-cased value in a normalizer table.

    Unmapped values come back trimmed but otherwise unchanged.
    """
    raw = (value or "").strip()
    return table.get(raw.upper(), raw)


def split_tags(*values: Optional[str]) -> List[str]:
    """Split tag/requirement cells on , ; | (or whitespace when none is present), de-duplicated."""
    tags: List[str] = []
    for value in values:
        text = (value or "").strip()
        if not text:
            continue
        parts = _TAG_DELIMITERS.split(text) if _TAG_DELIMITERS.search(text) else text.split()
        for part in parts:
            tag = part.strip()
            if tag and tag not in tags:
                tags.append(tag)
    return tags


class FieldMapper:
    """
    Map RawRows onto canonical fields for one preset.

    Alias lookup per canonical field, in alias order:
    1. a header equal to the alias (case-insensitive)
    2. a header containing the alias, or contained in it

    Headers that are an exact alias of a different field are left to that
    field during the substring pass, so "Test Case ID" never feeds the title.
    The first alias whose matching column has a non-empty value wins.
    """

    def __init__(self, preset: FieldPreset):
        self.preset = preset
        self._aliases: Dict[str, Tuple[str, ...]] = {
            name: tuple(a.strip().lower() for a in aliases if a.strip())
            for name, aliases in preset.column_mappings.items()
        }
        self._owner: Dict[str, FrozenSet[str]] = {}
        for name, aliases in self._aliases.items():
            for alias in aliases:
                self._owner[alias] = self._owner.get(alias, frozenset()) | {name}

    def _claimed_elsewhere(self, header: str, canonical: str) -> bool:
        owners = self._owner.get(header)
        return bool(owners) and canonical not in owners

    def resolve(self, row: RawRow, canonical: str) -> str:
        """Return the trimmed value for a canonical field, or "" when unresolved."""
        headers = [(k, k.strip().lower()) for k in row.keys() if k and k.strip()]
        for alias in self._aliases.get(canonical, ()):
            for key, low in headers:
                if low == alias:
                    value = (row.get(key) or "").strip()
                    if value:
                        return value
            if len(alias) < _MIN_SUBSTRING_LEN:
                continue
            for key, low in headers:
                if low == alias or self._claimed_elsewhere(low, canonical):
                    continue
                if alias in low or (len(low) >= _MIN_SUBSTRING_LEN and low in alias):
                    value = (row.get(key) or "").strip()
                    if value:
                        return value
        return ""

    def _normalized(self, row: RawRow, canonical: str, normalizer: str) -> Any:
        return normalize_value(self.resolve(row, canonical), self.preset.normalizer(normalizer))

    # PUBLIC_INTERFACE
    def map_row(
        self,
        row: RawRow,
        validate_required: bool = False,
        step_items: Optional[Sequence[Any]] = None,
    ) -> Optional[MappedRow]:
        """
        Resolve one raw row into a MappedRow.

        Returns None when the row is not a test case: no title and no id, or no
        title at all when validate_required is set. step_items is a structured
        step list (JSON input); when given it is used as-is instead of parsing
        the steps column text.
        """
        source_id = self.resolve(row, "id")
        title = self.resolve(row, "title")
        if not title and (validate_required or not source_id):
            logger.debug("Skipping row without title/id: %s", list(row.keys())[:5])
            return None

        expected_result = self.resolve(row, "expected_result")
        test_data = self.resolve(row, "test_data")
        if step_items is not None:
            steps = steps_from_items(step_items, self.preset.step_parsing)
        else:
            steps = parse_steps(
                self.resolve(row, "steps"),
                self.preset.step_parsing,
                expected_text=expected_result,
                test_data_text=test_data,
            )

        extra: Dict[str, str] = {}
        for name in self._aliases:
            if name in _CORE_FIELDS:
                continue
            value = self.resolve(row, name)
            if value:
                extra[name] = value

        return MappedRow(
            source_id=source_id,
            title=title or source_id,
            module=self.resolve(row, "module"),
            description=self.resolve(row, "description"),
            preconditions=self.resolve(row, "preconditions"),
            priority=self._normalized(row, "priority", "priority"),
            status=self._normalized(row, "status", "status"),
            test_result=self._normalized(row, "test_result", "test_result") if self.resolve(row, "test_result") else "",
            expected_result=expected_result,
            test_data=test_data,
            qa=self.resolve(row, "qa"),
            remarks=self.resolve(row, "remarks"),
            tags=split_tags(self.resolve(row, "tags"), self.resolve(row, "requirements")),
            steps=steps,
            regression=self._normalized(row, "regression", "boolean"),
            automation=self._normalized(row, "automation", "boolean"),
            extra=extra,
        )


# PUBLIC_INTERFACE
def map_row(row: RawRow, preset: FieldPreset, validate_required: bool = False) -> Optional[MappedRow]:
    """Convenience wrapper: map a single row with a throwaway FieldMapper."""
    return FieldMapper(preset).map_row(row, validate_required=validate_required)
