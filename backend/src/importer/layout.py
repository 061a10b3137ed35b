"""
Sheet layout detection.

Horizontal: one row per test case, first row holds headers.
Vertical key-value: one row per field ("Test Case ID" | "TC_001"), with a new
id key starting the next test case.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import List, Optional

from src.importer.tabular import Grid, RawRow

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 15
MIN_KEY_ROWS = 4
# A first row with this many field-name cells is a header row.
MIN_HEADER_KEYS = 3

# Prefixes that mark a cell as a field name.
_KEY_FRAGMENTS = (
    "test case id",
    "testcase id",
    "module",
    "test case",
    "test steps",
    "test step description",
    "expected result",
    "test data",
    "test result",
    "remarks",
    "priority",
    "description",
)
# Too short to match by prefix.
_EXACT_KEYS = ("qa", "id", "tc id")

_ID_KEYS = ("test case id", "testcase id", "tc id", "id")

_TRAILING_COLON = re.compile(r"[:\s]+$")


class Layout(str, enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


def _key_text(cell: Optional[str]) -> str:
    return _TRAILING_COLON.sub("", (cell or "").strip().lower())


def is_field_key(cell: Optional[str]) -> bool:
    key = _key_text(cell)
    if not key:
        return False
    return key in _EXACT_KEYS or key.startswith(_KEY_FRAGMENTS)


# PUBLIC_INTERFACE
def detect_layout(grid: Grid) -> Layout:
    """
    Classify a grid as horizontal or vertical key-value.

    A first row holding MIN_HEADER_KEYS or more field names is a header row,
    so the sheet is horizontal. Otherwise looks at the first cell of up to
    SAMPLE_ROWS rows; MIN_KEY_ROWS or more field-name cells means vertical.
    The decision applies to the whole sheet.
    """
    header_keys = sum(1 for cell in grid[0] if is_field_key(cell)) if grid else 0
    if header_keys >= MIN_HEADER_KEYS:
        logger.debug("Layout detection: %d field names in first row -> horizontal", header_keys)
        return Layout.HORIZONTAL

    sample = grid[:SAMPLE_ROWS]
    matches = sum(1 for row in sample if row and is_field_key(row[0]))
    layout = Layout.VERTICAL if matches >= MIN_KEY_ROWS else Layout.HORIZONTAL
    logger.debug("Layout detection: %d/%d key-like first cells -> %s", matches, len(sample), layout.value)
    return layout


# PUBLIC_INTERFACE
def group_vertical_rows(grid: Grid) -> List[RawRow]:
    """
    Fold key/value rows into one RawRow per logical test case.

    Keys keep their original label (minus a trailing colon) so the regular
    field mapper resolves them. A row with an empty key continues the
    previous key's value on a new line.
    """
    records: List[RawRow] = []
    current: RawRow = {}
    last_key: Optional[str] = None

    for row in grid:
        label = _TRAILING_COLON.sub("", (row[0] if row else "").strip())
        value = row[1].strip() if len(row) > 1 else ""

        if not label:
            if last_key is not None and value:
                current[last_key] = f"{current[last_key]}\n{value}" if current[last_key] else value
            continue

        if _key_text(label) in _ID_KEYS and current:
            records.append(current)
            current = {}
        if label in current:
            # Repeated key inside one case: keep both values.
            current[label] = f"{current[label]}\n{value}" if value else current[label]
        else:
            current[label] = value
        last_key = label

    if current:
        records.append(current)
    logger.info("Vertical layout: %d key/value rows -> %d records", len(grid), len(records))
    return records
