"""
Field presets for test case imports.

A preset is pure data describing one source convention:
- column_mappings: canonical field -> ordered source column aliases
- normalizers: normalizer name -> {UPPERCASE raw token: canonical value}
- step_parsing: how free-text step blocks are split into steps

Presets are frozen and shared read-only across every row of an import.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class UnknownPresetError(KeyError):
    """Raised when a preset name is not registered."""


# Leading ordinal/bullet markers: "1) ", "1. ", "1 ", "Step 1:", "-", "•", "*".
DEFAULT_STEP_PREFIX = r"^\s*(?:step\s*\d+\s*[:.)\-]?\s*|\d+\s*[.)]\s*|\d+\s+|[-•*]\s*)"


@dataclass(frozen=True)
class StepParsingConfig:
    """How to split a steps block into discrete steps."""

    line_separators: Tuple[str, ...] = ("\r\n", "\r", "\n", ";", "|")
    step_prefix_pattern: str = DEFAULT_STEP_PREFIX
    max_steps: int = 50
    min_step_length: int = 2
    default_action: str = "Execute test case"


@dataclass(frozen=True)
class FieldPreset:
    """Declarative alias/normalization/step-parsing configuration."""

    name: str
    description: str
    column_mappings: Mapping[str, Tuple[str, ...]]
    normalizers: Mapping[str, Mapping[str, Any]]
    step_parsing: StepParsingConfig = field(default_factory=StepParsingConfig)

    def aliases(self, canonical: str) -> Tuple[str, ...]:
        return self.column_mappings.get(canonical, ())

    def normalizer(self, name: str) -> Mapping[str, Any]:
        return self.normalizers.get(name, MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldPreset":
        """Build a preset from a JSON-style dict (lists become tuples)."""
        step_cfg = data.get("step_parsing") or {}
        if "line_separators" in step_cfg:
            step_cfg = {**step_cfg, "line_separators": tuple(step_cfg["line_separators"])}
        return cls(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            column_mappings=_freeze_mappings(data.get("column_mappings") or {}),
            normalizers=_freeze_normalizers(data.get("normalizers") or {}),
            step_parsing=StepParsingConfig(**step_cfg),
        )


def _freeze_mappings(raw: Mapping[str, Any]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType({k: tuple(str(a) for a in v) for k, v in raw.items()})


def _freeze_normalizers(raw: Mapping[str, Mapping[str, Any]]) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType(
        {name: MappingProxyType({str(k).upper(): v for k, v in table.items()}) for name, table in raw.items()}
    )


_PRIORITY = {
    "CRITICAL": "Critical",
    "BLOCKER": "Critical",
    "URGENT": "Critical",
    "P0": "Critical",
    "HIGH": "High",
    "MAJOR": "High",
    "P1": "High",
    "H": "High",
    "1": "High",
    "MEDIUM": "Medium",
    "NORMAL": "Medium",
    "P2": "Medium",
    "M": "Medium",
    "2": "Medium",
    "LOW": "Low",
    "MINOR": "Low",
    "P3": "Low",
    "L": "Low",
    "3": "Low",
}

_BOOLEAN = {
    "YES": True,
    "Y": True,
    "TRUE": True,
    "1": True,
    "ON": True,
    "ENABLED": True,
    "NO": False,
    "N": False,
    "FALSE": False,
    "0": False,
    "OFF": False,
    "DISABLED": False,
    "": False,
}

# Execution outcome ("Test Result" column).
_TEST_RESULT = {
    "PASS": "Passed",
    "PASSED": "Passed",
    "OK": "Passed",
    "FAIL": "Failed",
    "FAILED": "Failed",
    "BLOCK": "Blocked",
    "BLOCKED": "Blocked",
    "SKIP": "Skipped",
    "SKIPPED": "Skipped",
    "PENDING": "Pending",
    "NOT RUN": "Not Run",
    "NOT_RUN": "Not Run",
    "NOT EXECUTED": "Not Run",
    "": "Not Run",
}

# Lifecycle status of the case itself.
_STATUS = {
    "DRAFT": "draft",
    "NEW": "draft",
    "ACTIVE": "active",
    "READY": "active",
    "APPROVED": "active",
    "REVIEW": "review",
    "IN REVIEW": "review",
    "UNDER REVIEW": "review",
    "DEPRECATED": "deprecated",
    "OBSOLETE": "deprecated",
    "RETIRED": "deprecated",
}


STANDARD_PRESET = FieldPreset.from_dict(
    {
        "name": "standard",
        "description": "Generic CSV/Excel/JSON exports with common column synonyms.",
        "column_mappings": {
            "id": ["test case id", "id", "testcase id", "case id", "tc id"],
            "title": ["test case", "title", "name", "test name", "case name", "testcase", "test case title"],
            "module": ["module", "category", "section", "component", "type"],
            "steps": ["test step description", "steps", "test steps", "step description", "*test steps"],
            "description": ["description", "desc", "test description"],
            "preconditions": ["preconditions", "prerequisites", "precondition", "pre-conditions"],
            "expected_result": ["expected result", "expected", "expectedresult", "expected results"],
            "test_data": ["test data", "testdata", "data"],
            "test_result": ["test result", "testresult", "test_result", "result status", "actual result"],
            "status": ["status", "state", "case status"],
            "priority": ["priority", "prio"],
            "qa": ["qa", "qa owner", "assignee", "tester", "owner"],
            "remarks": ["remarks", "notes", "comment", "comments"],
            "tags": ["tags", "tag", "labels"],
            "requirements": ["requirements", "requirement", "req"],
            "regression": ["regression? yes/no", "regression", "is regression"],
            "automation": ["automation yes/no", "automation", "automated"],
        },
        "normalizers": {
            "priority": _PRIORITY,
            "boolean": _BOOLEAN,
            "test_result": _TEST_RESULT,
            "status": _STATUS,
        },
    }
)

# QA department spreadsheet template: exact column names, automation columns,
# and the "Test Result" column doubles as "Status".
QA_DEPARTMENT_PRESET = FieldPreset.from_dict(
    {
        "name": "qa_department",
        "description": "QA department Excel template with automation columns.",
        "column_mappings": {
            "id": ["Test Case ID", "TestCase ID", "ID"],
            "module": ["Module", "Section", "Component"],
            "title": ["Test Case", "TestCase", "Title", "Test Case Title"],
            "steps": ["Test Step Description", "Test Steps Description", "Steps"],
            "test_data": ["Test Data", "TestData", "Data"],
            "expected_result": ["Expected Result", "Expected"],
            "test_result": ["Test Result", "Status", "Result Status"],
            "qa": ["QA", "QA Owner", "Tester", "Owner"],
            "remarks": ["Remarks", "Comments", "Notes"],
            "regression": ["Regression? Yes/No", "Regression", "Is Regression"],
            "automation": ["Automation Yes/No", "Automation", "Auto"],
            "priority": ["Priority", "Prio"],
            "automation_id": ["Automation ID", "Auto ID"],
            "automation_preset": ["Automation Preset Data", "Auto Preset"],
            "automation_loop": ["Automation Loop Data", "Auto Loop"],
            "automation_note": ["Automation Note", "Auto Note"],
            "step_count": ["*Test Steps", "Step Count", "Steps Count"],
        },
        "normalizers": {
            "priority": _PRIORITY,
            "boolean": _BOOLEAN,
            "test_result": _TEST_RESULT,
            "status": _STATUS,
        },
    }
)

_REGISTRY: Dict[str, FieldPreset] = {
    STANDARD_PRESET.name: STANDARD_PRESET,
    QA_DEPARTMENT_PRESET.name: QA_DEPARTMENT_PRESET,
}


# PUBLIC_INTERFACE
def get_preset(name: Optional[str] = None) -> FieldPreset:
    """Return a registered preset by name (defaults to 'standard')."""
    key = (name or STANDARD_PRESET.name).strip().lower()
    try:
        return _REGISTRY[key]
    except KeyError:
        raise UnknownPresetError(f"Unknown preset '{name}'. Available: {', '.join(preset_names())}") from None


def preset_names() -> Tuple[str, ...]:
    return tuple(sorted(_REGISTRY))


# PUBLIC_INTERFACE
def load_preset_file(path: Path) -> FieldPreset:
    """Load a custom preset from a JSON file (same shape as FieldPreset.from_dict)."""
    with open(path, "r", encoding="utf-8") as f:
        return FieldPreset.from_dict(json.load(f))
