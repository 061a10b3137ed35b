"""
Duplicate detector tests: signatures, keep-case choice, smart similarity, stats.
"""

import pytest

from src.importer.dedupe import (
    case_similarity,
    completeness_score,
    detect_duplicates,
    exact_signature,
    levenshtein_distance,
    levenshtein_similarity,
)
from src.importer.records import TestCase, TestStep


def make_case(case_id, title, module="Auth", steps=("Open app", "Tap login"), **kwargs):
    return TestCase(
        id=case_id,
        title=title,
        module=module,
        test_steps=[TestStep(step=i, description=d) for i, d in enumerate(steps, start=1)],
        **kwargs,
    )


class TestLevenshtein:
    def test_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity(self):
        assert levenshtein_similarity("", "") == 1.0
        assert levenshtein_similarity("abcd", "abcx") == 0.75
        assert levenshtein_similarity("abc", "xyz") == 0.0


class TestSignatures:
    def test_normalized_text_gives_same_signature(self):
        a = make_case("1", "Login", module="Auth")
        b = make_case("2", "  login ", module="AUTH ", qa="bob", remarks="copy")

        assert exact_signature(a) == exact_signature(b)

    def test_different_steps_change_signature(self):
        a = make_case("1", "Login")
        b = make_case("2", "Login", steps=("Open app",))

        assert exact_signature(a) != exact_signature(b)

    def test_completeness_score(self):
        bare = TestCase(id="1", title="Login", test_steps=[TestStep(step=1, description="x")])
        rich = make_case(
            "2",
            "Login",
            steps=[f"step {i}" for i in range(8)],
            description="d",
            priority="high",
            test_data="user",
            expected_result="ok",
            tags=["a", "b"],
        )

        assert completeness_score(bare) == 10 + 2
        assert completeness_score(rich) == 10 + 5 + 3 + 2 + 10 + 3 + 3 + 2


class TestExactGroups:
    def test_keep_case_is_most_complete(self):
        plain = make_case("1", "Login", qa="alice")
        with_data = make_case("2", "Login", qa="bob", test_data="user=alice")

        result = detect_duplicates([plain, with_data], mode="strict")

        assert len(result.exact_duplicates) == 1
        group = result.exact_duplicates[0]
        assert group.cases == [plain, with_data]
        assert group.keep_case is with_data
        assert group.duplicate_type == "exact"
        assert result.unique_cases == [with_data]

    def test_tie_keeps_earliest(self):
        first = make_case("1", "Login")
        second = make_case("2", "Login")

        result = detect_duplicates([first, second], mode="strict")

        assert result.exact_duplicates[0].keep_case is first

    def test_rate_math(self):
        cases = []
        for title, copies in (("Alpha login", 2), ("Beta logout", 2), ("Gamma reset", 3)):
            cases.extend(make_case(f"{title}-{n}", title, steps=(title,)) for n in range(copies))
        cases.extend(
            make_case(t, t, steps=(t,)) for t in ("Upload avatar", "Export invoices as PDF", "Delete account")
        )
        assert len(cases) == 10

        stats = detect_duplicates(cases, mode="strict").deduplication_stats

        assert stats.original_count == 10
        assert stats.duplicates_removed == 4
        assert stats.final_count == 6
        assert stats.duplicate_rate == 0.4

    def test_off_mode_reports_but_keeps_everything(self):
        a = make_case("1", "Login")
        b = make_case("2", "Login")

        result = detect_duplicates([a, b], mode="off")

        assert len(result.exact_duplicates) == 1
        assert result.unique_cases == [a, b]
        assert result.similar_cases == []
        assert result.deduplication_stats.duplicates_removed == 0

    def test_inputs_not_mutated(self):
        cases = [make_case("1", "Login"), make_case("2", "Login")]
        snapshot = list(cases)

        detect_duplicates(cases, mode="smart")

        assert cases == snapshot

    def test_existing_record_wins_against_reimport(self):
        stored = make_case("TC_IMPORT_AUTH_001", "Login")
        fresh = make_case("TC_IMPORT_AUTH_002", "Login", description="more detail")

        result = detect_duplicates([fresh], mode="strict", existing=[stored])

        assert result.exact_duplicates[0].keep_case is stored
        assert result.unique_cases == []
        assert result.deduplication_stats.duplicates_removed == 1

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            detect_duplicates([], mode="fuzzy")


class TestSmartSimilarity:
    def test_one_character_title_change_is_similar(self):
        a = make_case("1", "User can login today")
        b = make_case("2", "User can login todax", priority="high")
        assert len(a.title) == 20

        result = detect_duplicates([a, b], mode="smart")

        assert result.exact_duplicates == []
        assert len(result.similar_cases) == 1
        group = result.similar_cases[0]
        assert group.cases == [a, b]
        assert group.similarity_score == pytest.approx(case_similarity(a, b), abs=1e-4)
        assert group.similarity_score > 0.85
        assert any(d.startswith("Title:") for d in group.differences)
        assert any(d.startswith("Priority:") for d in group.differences)
        assert result.unique_cases == [a, b]

    def test_unrelated_titles_are_not_similar(self):
        a = make_case("1", "abcdefgh")
        b = make_case("2", "zyxwvuts")

        result = detect_duplicates([a, b], mode="smart")

        assert result.similar_cases == []

    def test_strict_mode_skips_similarity(self):
        a = make_case("1", "User can login today")
        b = make_case("2", "User can login todax")

        assert detect_duplicates([a, b], mode="strict").similar_cases == []

    def test_similar_group_score_is_mean_pairwise(self):
        a = make_case("1", "Checkout with card ok")
        b = make_case("2", "Checkout with card ox")
        c = make_case("3", "Checkout with card oz")

        group = detect_duplicates([a, b, c], mode="smart").similar_cases[0]

        pairs = [case_similarity(a, b), case_similarity(a, c), case_similarity(b, c)]
        assert len(group.cases) == 3
        assert group.similarity_score == pytest.approx(sum(pairs) / 3, abs=1e-4)
