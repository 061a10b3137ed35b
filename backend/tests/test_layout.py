"""
Layout detection and vertical key-value grouping tests.
"""

from src.importer.layout import Layout, detect_layout, group_vertical_rows, is_field_key

VERTICAL_SHEET = [
    ["Test Case ID:", "TC-1"],
    ["Module", "Auth"],
    ["Test Case", "Login works"],
    ["Test Steps", "1. Open app"],
    ["", "2. Tap login"],
    ["Expected Result", "Home shown"],
    ["QA", "alice"],
    ["Test Case ID", "TC-2"],
    ["Module", "Auth"],
    ["Test Case", "Logout works"],
    ["Test Steps", "1. Tap logout"],
    ["QA", "bob"],
]


class TestDetectLayout:
    def test_key_value_sheet_is_vertical(self):
        assert detect_layout(VERTICAL_SHEET) is Layout.VERTICAL

    def test_header_table_is_horizontal(self):
        grid = [
            ["Test Case", "Module", "Test Steps"],
            ["Login", "Auth", "Open app"],
            ["Logout", "Auth", "Tap logout"],
        ]

        assert detect_layout(grid) is Layout.HORIZONTAL

    def test_two_matching_rows_stay_horizontal(self):
        grid = [
            ["Test Case ID", "TC-1"],
            ["QA", "alice"],
            ["Owner", "bob"],
            ["Build", "42"],
            ["Notes", "none"],
        ]

        assert detect_layout(grid) is Layout.HORIZONTAL

    def test_only_first_fifteen_rows_are_sampled(self):
        filler = [["row", str(i)] for i in range(15)]
        keys = [["Module", "x"], ["QA", "y"], ["Remarks", "z"], ["Priority", "p"]]

        assert detect_layout(filler + keys) is Layout.HORIZONTAL

    def test_header_row_wins_over_key_like_first_column(self):
        grid = [
            ["Module", "Test Case", "Priority", "Test Steps"],
            ["Module A", "Login", "High", "Open app"],
            ["Module B", "Logout", "Low", "Tap logout"],
            ["Module C", "Pay", "High", "Pay"],
            ["Module D", "Refund", "Low", "Refund"],
        ]

        assert detect_layout(grid) is Layout.HORIZONTAL

    def test_titles_mentioning_field_names_stay_horizontal(self):
        grid = [
            ["Title", "Module", "Steps"],
            ["Payments module opens", "Billing", "Open"],
            ["Reports module exports", "Reports", "Export"],
            ["Priority queue drains", "Jobs", "Drain"],
            ["Description field saves", "Forms", "Save"],
        ]

        assert detect_layout(grid) is Layout.HORIZONTAL

    def test_field_key_matching(self):
        assert is_field_key("  Expected Result: ")
        assert is_field_key("Test Case Description")
        assert not is_field_key("Payments module opens")
        assert is_field_key("QA")
        assert is_field_key("id")
        assert not is_field_key("Quality")
        assert not is_field_key("")


class TestGroupVerticalRows:
    def test_id_key_starts_new_record(self):
        records = group_vertical_rows(VERTICAL_SHEET)

        assert len(records) == 2
        assert records[0]["Test Case ID"] == "TC-1"
        assert records[0]["Test Case"] == "Login works"
        assert records[1]["Test Case ID"] == "TC-2"
        assert records[1]["QA"] == "bob"

    def test_empty_key_continues_previous_value(self):
        records = group_vertical_rows(VERTICAL_SHEET)

        assert records[0]["Test Steps"] == "1. Open app\n2. Tap login"
