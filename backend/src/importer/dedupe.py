"""
Duplicate detection for freshly built test cases.

Modes:
- off: report exact groups, keep every case
- strict: drop all but the most complete member of each exact group
- smart: strict, then group near-duplicates (Levenshtein on title and steps)
  for human review; similar cases are never removed
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.importer.records import DEFAULT_MODULE, DEFAULT_PRIORITY, TestCase

logger = logging.getLogger(__name__)

MODES = ("off", "strict", "smart")
SIMILARITY_THRESHOLD = 0.85
TITLE_WEIGHT = 0.6
STEPS_WEIGHT = 0.4

_WS = re.compile(r"\s+")


@dataclass
class DuplicateGroup:
    signature: str
    cases: List[TestCase]
    keep_case: TestCase
    duplicate_type: str = "exact"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "cases": [c.to_dict() for c in self.cases],
            "keep_case": self.keep_case.to_dict(),
            "duplicate_type": self.duplicate_type,
        }


@dataclass
class SimilarGroup:
    cases: List[TestCase]
    similarity_score: float
    differences: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cases": [c.to_dict() for c in self.cases],
            "similarity_score": self.similarity_score,
            "differences": list(self.differences),
        }


@dataclass
class DeduplicationStats:
    original_count: int
    duplicates_removed: int
    final_count: int
    duplicate_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_count": self.original_count,
            "duplicates_removed": self.duplicates_removed,
            "final_count": self.final_count,
            "duplicate_rate": self.duplicate_rate,
        }


@dataclass
class DuplicateDetectionResult:
    exact_duplicates: List[DuplicateGroup]
    similar_cases: List[SimilarGroup]
    unique_cases: List[TestCase]
    deduplication_stats: DeduplicationStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exact_duplicates": [g.to_dict() for g in self.exact_duplicates],
            "similar_cases": [g.to_dict() for g in self.similar_cases],
            "unique_cases": [c.to_dict() for c in self.unique_cases],
            "deduplication_stats": self.deduplication_stats.to_dict(),
        }


def normalize_text(value: Optional[str]) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WS.sub(" ", (value or "").strip().lower())


def _steps_text(case: TestCase) -> str:
    return " ".join(normalize_text(s.description) for s in case.test_steps)


def exact_signature(case: TestCase) -> str:
    """SHA-256 over normalized title, module and step descriptions."""
    key = "|".join([normalize_text(case.title), normalize_text(case.module), _steps_text(case)])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def completeness_score(case: TestCase) -> int:
    score = 0
    if case.title.strip():
        score += 10
    if case.description.strip():
        score += 5
    if case.module.strip() and case.module.strip() != DEFAULT_MODULE:
        score += 3
    if case.priority and case.priority != DEFAULT_PRIORITY:
        score += 2
    score += min(len(case.test_steps) * 2, 10)
    if case.test_data.strip():
        score += 3
    if case.expected_result.strip():
        score += 3
    score += len(case.tags)
    return score


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """(max_len - distance) / max_len; 1.0 for two empty strings."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def _upper_bound(a: str, b: str) -> float:
    # Distance is at least the length difference.
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - abs(len(a) - len(b))) / longest


def case_similarity(a: TestCase, b: TestCase) -> float:
    """0.6 * title similarity + 0.4 * step-text similarity."""
    return TITLE_WEIGHT * levenshtein_similarity(normalize_text(a.title), normalize_text(b.title)) + (
        STEPS_WEIGHT * levenshtein_similarity(_steps_text(a), _steps_text(b))
    )


def _could_be_similar(a: TestCase, b: TestCase) -> bool:
    bound = TITLE_WEIGHT * _upper_bound(normalize_text(a.title), normalize_text(b.title)) + (
        STEPS_WEIGHT * _upper_bound(_steps_text(a), _steps_text(b))
    )
    return bound > SIMILARITY_THRESHOLD


def _differences(first: TestCase, other: TestCase) -> List[str]:
    diffs: List[str] = []
    if normalize_text(first.title) != normalize_text(other.title):
        diffs.append(f'Title: "{first.title}" vs "{other.title}"')
    if first.priority != other.priority:
        diffs.append(f"Priority: {first.priority} vs {other.priority}")
    if normalize_text(first.module) != normalize_text(other.module):
        diffs.append(f"Module: {first.module} vs {other.module}")
    return diffs


def _pick_keep(cases: Sequence[TestCase]) -> TestCase:
    best = cases[0]
    best_score = completeness_score(best)
    for case in cases[1:]:
        score = completeness_score(case)
        if score > best_score:
            best, best_score = case, score
    return best


def _exact_groups(
    cases: Sequence[TestCase], existing: Sequence[TestCase]
) -> List[DuplicateGroup]:
    by_signature: Dict[str, List[TestCase]] = {}
    for case in cases:
        by_signature.setdefault(exact_signature(case), []).append(case)

    persisted: Dict[str, TestCase] = {}
    for case in existing:
        persisted.setdefault(exact_signature(case), case)

    groups: List[DuplicateGroup] = []
    for signature, members in by_signature.items():
        stored = persisted.get(signature)
        if stored is not None:
            # The persisted record always wins against a re-import.
            groups.append(DuplicateGroup(signature=signature, cases=[stored, *members], keep_case=stored))
        elif len(members) > 1:
            groups.append(DuplicateGroup(signature=signature, cases=members, keep_case=_pick_keep(members)))
    return groups


def _similar_groups(cases: Sequence[TestCase]) -> List[SimilarGroup]:
    grouped = [False] * len(cases)
    groups: List[SimilarGroup] = []
    for i, seed in enumerate(cases):
        if grouped[i]:
            continue
        members = [seed]
        for j in range(i + 1, len(cases)):
            if grouped[j] or not _could_be_similar(seed, cases[j]):
                continue
            if case_similarity(seed, cases[j]) > SIMILARITY_THRESHOLD:
                members.append(cases[j])
                grouped[j] = True
        if len(members) < 2:
            continue
        grouped[i] = True

        scores = [
            case_similarity(members[a], members[b])
            for a in range(len(members))
            for b in range(a + 1, len(members))
        ]
        differences: List[str] = []
        for other in members[1:]:
            for diff in _differences(seed, other):
                if diff not in differences:
                    differences.append(diff)
        groups.append(
            SimilarGroup(
                cases=members,
                similarity_score=round(sum(scores) / len(scores), 4),
                differences=differences,
            )
        )
    return groups


# PUBLIC_INTERFACE
def detect_duplicates(
    cases: Sequence[TestCase],
    mode: str = "smart",
    existing: Optional[Iterable[TestCase]] = None,
) -> DuplicateDetectionResult:
    """
    Group exact and near-duplicate test cases.

    existing: already-persisted cases. A fresh case matching one of them
    exactly joins a group whose keep_case is the persisted record, so the fresh
    copy is dropped (strict/smart). Similarity is only computed within cases.
    Neither input is mutated.
    """
    mode = (mode or "smart").strip().lower()
    if mode not in MODES:
        raise ValueError(f"Unknown deduplication mode '{mode}'. Expected one of: {', '.join(MODES)}")

    cases = list(cases)
    groups = _exact_groups(cases, list(existing or ()))

    dropped = set()
    for group in groups:
        for member in group.cases:
            if member is not group.keep_case:
                dropped.add(id(member))

    if mode == "off":
        unique = list(cases)
        removed = 0
    else:
        unique = [c for c in cases if id(c) not in dropped]
        removed = len(cases) - len(unique)

    similar = _similar_groups(unique) if mode == "smart" else []

    original = len(cases)
    stats = DeduplicationStats(
        original_count=original,
        duplicates_removed=removed,
        final_count=len(unique),
        duplicate_rate=round(removed / original, 4) if original else 0.0,
    )
    logger.info(
        "Duplicate detection (%s): %d cases, %d exact groups, %d similar groups, %d removed",
        mode,
        original,
        len(groups),
        len(similar),
        removed,
    )
    return DuplicateDetectionResult(
        exact_duplicates=groups,
        similar_cases=similar,
        unique_cases=unique,
        deduplication_stats=stats,
    )
