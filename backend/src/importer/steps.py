"""
Free-text step block parsing.

"1. Open app\n2. Tap login | Expected: Login form shown" becomes two ordered
TestStep records. Separators and marker patterns come from the preset's
StepParsingConfig; a case always ends up with at least one step.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, List, Optional, Pattern, Sequence, Tuple

from src.importer.presets import StepParsingConfig
from src.importer.records import TestStep

# "... | Expected: ...", "...; Expected Result: ...", "... -> Expected: ..."
_INLINE_EXPECTED = re.compile(
    r"\s*(?:\||;|->|=>)\s*expected(?:\s+results?)?\s*:\s*",
    re.IGNORECASE,
)
# Stands in for an inline expected marker while separators are rewritten.
_EXPECTED_MARK = "\x1f"


@lru_cache(maxsize=16)
def _prefix_re(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def split_lines(text: Optional[str], separators: Tuple[str, ...]) -> List[str]:
    """Normalize every separator to a newline, then return trimmed non-blank lines."""
    if not text:
        return []
    value = str(text)
    # Longest separators first so "\r\n" is not split twice.
    for sep in sorted(separators, key=len, reverse=True):
        value = value.replace(sep, "\n")
    return [line.strip() for line in value.split("\n") if line.strip()]


def strip_marker(line: str, config: StepParsingConfig) -> str:
    """Remove a leading ordinal/bullet marker ("1) ", "2. ", "3 ", "-", "•", "*")."""
    return _prefix_re(config.step_prefix_pattern).sub("", line, count=1).strip()


def _parallel_lines(text: Optional[str], config: StepParsingConfig) -> List[str]:
    return [strip_marker(line, config) for line in split_lines(text, config.line_separators)]


# PUBLIC_INTERFACE
def parse_steps(
    text: Optional[str],
    config: StepParsingConfig,
    expected_text: Optional[str] = None,
    test_data_text: Optional[str] = None,
) -> List[TestStep]:
    """
    Split a steps block into ordered TestStep records.

    expected_text / test_data_text are optional parallel blocks; their N-th
    line is paired with the N-th step unless the step line carries its own
    inline "Expected:" part. Lines shorter than min_step_length after marker
    stripping are noise. At most max_steps steps are returned, and never zero:
    an empty block yields one placeholder step with the default action.
    """
    protected = _INLINE_EXPECTED.sub(_EXPECTED_MARK, str(text)) if text else ""
    lines = split_lines(protected, config.line_separators)
    expected_lines = _parallel_lines(expected_text, config)
    data_lines = _parallel_lines(test_data_text, config)

    steps: List[TestStep] = []
    for line in lines:
        if len(steps) >= config.max_steps:
            break
        description, _, inline_expected = line.partition(_EXPECTED_MARK)
        description = strip_marker(description, config)
        if len(description) < config.min_step_length:
            continue
        idx = len(steps)
        expected = inline_expected.replace(_EXPECTED_MARK, " ").strip()
        if not expected and idx < len(expected_lines):
            expected = expected_lines[idx]
        steps.append(
            TestStep(
                step=idx + 1,
                description=description,
                expected_result=expected,
                test_data=data_lines[idx] if idx < len(data_lines) else "",
            )
        )

    if not steps:
        steps.append(TestStep(step=1, description=config.default_action))
    return steps


def _item_text(item: dict, *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


# PUBLIC_INTERFACE
def steps_from_items(items: Sequence[Any], config: StepParsingConfig) -> List[TestStep]:
    """
    Build TestStep records from an already structured step list (JSON input).

    Each item is an object with description/action, expected result and test
    data, or a plain string. Descriptions are taken whole, so separators inside
    them never split a step. Numbering follows list order; steps without a
    description are dropped, and an empty result gets the placeholder step.
    """
    steps: List[TestStep] = []
    for item in items:
        if len(steps) >= config.max_steps:
            break
        if isinstance(item, dict):
            description = _item_text(item, "description", "action", "step_description")
            expected = _item_text(item, "expected_result", "expectedResult", "expected")
            test_data = _item_text(item, "test_data", "testData", "data")
        else:
            description = "" if item is None else str(item).strip()
            expected = test_data = ""
        description = strip_marker(description, config)
        if not description:
            continue
        steps.append(
            TestStep(step=len(steps) + 1, description=description, expected_result=expected, test_data=test_data)
        )

    if not steps:
        steps.append(TestStep(step=1, description=config.default_action))
    return steps


def is_placeholder(steps: List[TestStep], config: StepParsingConfig) -> bool:
    """True when the list is only the synthesized default step."""
    return len(steps) == 1 and steps[0].description == config.default_action and not steps[0].expected_result
