"""
End-to-end import pipeline tests.
"""

import json

import pytest

from src.importer.pipeline import ImportOptions, import_test_cases
from src.importer.presets import UnknownPresetError

SCENARIO_CSV = (
    "Test Case,Module,Test Steps\n"
    '"Login","Auth","1. Open app\n2. Tap login"\n'
    '"Login","Auth ","1. Open app\n2. Tap login"\n'
)

CASES_CSV = (
    "Test Case ID,Test Case,Module,Priority,Test Steps,Expected Result\n"
    'TC-1,Login,Auth,High,"1. Open app\n2. Tap login","App opens\nForm shown"\n'
    "TC-2,Logout,Auth,Low,1. Tap logout,Signed out\n"
    "TC-3,Pay,Billing,P0,1. Pay,Receipt\n"
)


class TestScenario:
    def test_trailing_space_duplicate_collapses(self):
        result = import_test_cases(SCENARIO_CSV, "cases.csv")

        assert result.success is True
        assert len(result.test_cases) == 1
        assert result.skipped == 0
        groups = result.duplicate_detection.exact_duplicates
        assert len(groups) == 1
        assert len(groups[0].cases) == 2
        case = result.test_cases[0]
        assert [s.description for s in case.test_steps] == ["Open app", "Tap login"]
        assert case.module == "Auth"

    def test_off_mode_keeps_both(self):
        result = import_test_cases(SCENARIO_CSV, "cases.csv", ImportOptions(deduplication_mode="off"))

        assert len(result.test_cases) == 2
        assert len(result.duplicate_detection.exact_duplicates) == 1


class TestImport:
    def test_horizontal_csv(self):
        result = import_test_cases(CASES_CSV.encode("utf-8"), "cases.csv", ImportOptions(default_project="p1"))

        assert result.success is True
        assert result.layout == "horizontal"
        assert [c.id for c in result.test_cases] == [
            "TC_IMPORT_AUTH_001",
            "TC_IMPORT_AUTH_002",
            "TC_IMPORT_BILLING_001",
        ]
        login = result.test_cases[0]
        assert login.source_id == "TC-1"
        assert login.priority == "high"
        assert login.project_id == "p1"
        assert login.test_steps[1].expected_result == "Form shown"
        assert result.test_cases[2].priority == "critical"

    def test_reimport_never_collides(self):
        first = import_test_cases(CASES_CSV, "cases.csv")
        options = ImportOptions(existing_test_cases=first.test_cases, deduplication_mode="off")

        second = import_test_cases(CASES_CSV, "cases.csv", options)

        first_ids = {c.id for c in first.test_cases}
        second_ids = [c.id for c in second.test_cases]
        assert first_ids.isdisjoint(second_ids)
        assert second_ids[:2] == ["TC_IMPORT_AUTH_003", "TC_IMPORT_AUTH_004"]
        assert [c.id for c in first.test_cases] == [
            "TC_IMPORT_AUTH_001",
            "TC_IMPORT_AUTH_002",
            "TC_IMPORT_BILLING_001",
        ]

    def test_skip_duplicates_drops_already_stored_cases(self):
        first = import_test_cases(CASES_CSV, "cases.csv")
        options = ImportOptions(existing_test_cases=first.test_cases, skip_duplicates=True)

        second = import_test_cases(CASES_CSV, "cases.csv", options)

        assert second.test_cases == []
        assert second.success is False
        assert second.duplicate_detection.deduplication_stats.duplicates_removed == 3
        assert second.skipped == 3

    def test_rows_without_title_or_id_are_skipped(self):
        text = "Test Case,Module\nLogin,Auth\n,Auth\n,Billing\n"

        result = import_test_cases(text, "cases.csv")

        assert len(result.test_cases) == 1
        assert result.skipped == 2
        assert result.errors == []

    def test_vertical_csv(self):
        text = (
            "Test Case ID,TC-1\n"
            "Module,Auth\n"
            "Test Case,Login\n"
            "Test Steps,1. Open app\n"
            ",2. Tap login\n"
            "QA,alice\n"
            "Test Case ID,TC-2\n"
            "Module,Auth\n"
            "Test Case,Logout\n"
        )

        result = import_test_cases(text, "sheet.csv")

        assert result.layout == "vertical"
        assert [c.title for c in result.test_cases] == ["Login", "Logout"]
        assert len(result.test_cases[0].test_steps) == 2
        assert result.test_cases[0].qa == "alice"

    def test_excel_selected_sheet(self, make_xlsx):
        data = make_xlsx(
            {
                "Notes": [["nothing here"]],
                "Cases": [["Title", "Module", "Steps"], ["Login", "Auth", "Open app; Tap login"]],
            }
        )

        result = import_test_cases(data, "book.xlsx", ImportOptions(selected_sheet="Cases"))

        assert result.success is True
        assert result.test_cases[0].title == "Login"
        assert len(result.test_cases[0].test_steps) == 2

    def test_json_with_bad_item(self):
        doc = {
            "testCases": [
                {"title": "Login", "category": "Auth", "steps": [{"description": "Open app", "expected": "Shown"}]},
                "not an object",
                {"title": "Logout", "priority": "high", "tags": ["smoke"]},
            ]
        }

        result = import_test_cases(json.dumps(doc), "cases.json")

        assert result.success is True
        assert len(result.test_cases) == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Row 2:")
        assert result.test_cases[0].test_steps[0].expected_result == "Shown"
        assert result.test_cases[1].tags == ["smoke"]
        assert result.test_cases[1].priority == "high"

    def test_json_structured_steps_are_not_split(self):
        doc = [
            {
                "title": "Login",
                "steps": [
                    {"description": "Enter user; password", "expected": "Accepted", "testData": "alice / s3cret"},
                    {"description": "Submit | wait"},
                ],
            }
        ]

        case = import_test_cases(json.dumps(doc), "cases.json").test_cases[0]

        assert [s.description for s in case.test_steps] == ["Enter user; password", "Submit | wait"]
        assert case.test_steps[0].expected_result == "Accepted"
        assert case.test_steps[0].test_data == "alice / s3cret"

    def test_titles_mentioning_module_stay_horizontal(self):
        text = (
            "Title,Module,Steps\n"
            "Payments module opens,Billing,Open\n"
            "Reports module exports,Reports,Export\n"
            "Admin module loads,Admin,Load\n"
            "Search module filters,Search,Filter\n"
        )

        result = import_test_cases(text, "cases.csv")

        assert result.layout == "horizontal"
        assert len(result.test_cases) == 4

    def test_existing_ids_from_elsewhere_are_not_reused(self):
        options = ImportOptions(existing_ids=["TC_IMPORT_AUTH_001", "TC_IMPORT_AUTH_002"])

        result = import_test_cases(CASES_CSV, "cases.csv", options)

        assert [c.id for c in result.test_cases][:2] == ["TC_IMPORT_AUTH_003", "TC_IMPORT_AUTH_004"]

    def test_every_case_has_steps(self):
        result = import_test_cases("Title\nLogin\nLogout\n", "cases.csv")

        assert all(len(c.test_steps) == 1 for c in result.test_cases)
        assert result.test_cases[0].test_steps[0].description == "Execute test case"


class TestFailures:
    def test_malformed_csv_is_structural(self):
        result = import_test_cases('Title\n"Login\n', "cases.csv")

        assert result.success is False
        assert result.test_cases == []
        assert len(result.errors) == 1
        assert "Unterminated" in result.errors[0]

    def test_unsupported_extension(self):
        result = import_test_cases("whatever", "cases.txt")

        assert result.success is False
        assert "Unsupported file type" in result.errors[0]

    def test_bad_json_shape(self):
        result = import_test_cases('{"items": []}', "cases.json")

        assert result.success is False
        assert len(result.errors) == 1

    def test_empty_file(self):
        result = import_test_cases("", "cases.csv")

        assert result.success is False
        assert result.errors == ["No data rows found in file"]

    def test_unknown_preset(self):
        with pytest.raises(UnknownPresetError):
            import_test_cases(CASES_CSV, "cases.csv", ImportOptions(preset_name="nope"))


class TestAuditOutput:
    def test_audit_csv_requested(self):
        result = import_test_cases(SCENARIO_CSV, "cases.csv", ImportOptions(generate_audit_csv=True))

        assert result.audit_report.total_rows == 2
        assert result.audit_report.duplicates_found == 1
        assert result.audit_csv.startswith("Import Audit Report")

    def test_audit_disabled(self):
        result = import_test_cases(SCENARIO_CSV, "cases.csv", ImportOptions(enable_audit=False, generate_audit_csv=True))

        assert result.audit_report is None
        assert result.audit_csv is None

    def test_result_serializes(self):
        payload = import_test_cases(CASES_CSV, "cases.csv").to_dict()

        json.dumps(payload)
        assert payload["test_cases"][0]["test_steps"][0]["step"] == 1


def test_existing_cases_may_be_plain_dicts():
    stored = [{"id": "TC_IMPORT_AUTH_007", "title": "Old", "module": "Auth", "testSteps": [{"description": "x"}]}]

    result = import_test_cases(CASES_CSV, "cases.csv", ImportOptions(existing_test_cases=stored))

    assert result.test_cases[0].id == "TC_IMPORT_AUTH_008"
