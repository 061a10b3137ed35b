"""
HTTP surface tests against a temporary SQLite database.
"""

CSV_BODY = (
    "Test Case ID,Test Case,Module,Priority,Test Steps\n"
    'TC-1,Login,Auth,High,"1. Open app\n2. Tap login"\n'
    "TC-2,Logout,Auth,Low,1. Tap logout\n"
    "TC-3,Pay,Billing,P0,1. Pay\n"
).encode("utf-8")


def _upload(client, body=CSV_BODY, filename="cases.csv", **form):
    return client.post(
        "/import/testcases",
        files={"file": (filename, body, "text/csv")},
        data={"project_id": "proj-1", **form},
    )


def test_health(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Healthy"}


class TestImportEndpoint:
    def test_import_persists_cases(self, client):
        response = _upload(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["persisted"] == 3
        assert [c["id"] for c in body["test_cases"]] == [
            "TC_IMPORT_AUTH_001",
            "TC_IMPORT_AUTH_002",
            "TC_IMPORT_BILLING_001",
        ]
        assert body["audit_report"]["total_rows"] == 3

        listing = client.get("/projects/proj-1/testcases").json()
        assert listing["total"] == 3

    def test_second_import_continues_ids(self, client):
        _upload(client)

        body = _upload(client, deduplication_mode="off").json()

        assert [c["id"] for c in body["test_cases"]][:2] == ["TC_IMPORT_AUTH_003", "TC_IMPORT_AUTH_004"]
        assert client.get("/projects/proj-1/testcases").json()["total"] == 6

    def test_same_file_into_two_projects_gets_distinct_ids(self, client):
        first = _upload(client, project_id="A")
        second = _upload(client, project_id="B")

        assert first.status_code == 200
        assert second.status_code == 200
        first_ids = {c["id"] for c in first.json()["test_cases"]}
        second_ids = [c["id"] for c in second.json()["test_cases"]]
        assert first_ids.isdisjoint(second_ids)
        assert second_ids[:2] == ["TC_IMPORT_AUTH_003", "TC_IMPORT_AUTH_004"]
        assert client.get("/projects/A/testcases").json()["total"] == 3
        assert client.get("/projects/B/testcases").json()["total"] == 3

    def test_skip_duplicates_only_checks_own_project(self, client):
        _upload(client, project_id="A")

        body = _upload(client, project_id="B", skip_duplicates="true").json()

        assert body["persisted"] == 3
        assert body["skipped"] == 0

    def test_skip_duplicates_against_stored_cases(self, client):
        _upload(client)

        body = _upload(client, skip_duplicates="true").json()

        assert body["success"] is False
        assert body["test_cases"] == []
        assert body["skipped"] == 3
        assert client.get("/projects/proj-1/testcases").json()["total"] == 3

    def test_structural_failure_is_reported_in_body(self, client):
        response = _upload(client, body=b'Title\n"Login\n')

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert len(body["errors"]) == 1

    def test_audit_csv_included_on_request(self, client):
        body = _upload(client, audit_csv="true").json()

        assert body["audit_csv"].startswith("Import Audit Report")

    def test_empty_upload_rejected(self, client):
        assert _upload(client, body=b"").status_code == 400

    def test_oversized_upload_rejected(self, client, monkeypatch):
        monkeypatch.setenv("IMPORT_MAX_UPLOAD_BYTES", "10")

        assert _upload(client).status_code == 413

    def test_unsupported_extension_rejected(self, client):
        assert _upload(client, filename="cases.txt").status_code == 400

    def test_unknown_preset_rejected(self, client):
        response = _upload(client, preset="nope")

        assert response.status_code == 400
        assert "nope" in response.json()["detail"]

    def test_unknown_mode_rejected(self, client):
        assert _upload(client, deduplication_mode="fuzzy").status_code == 400


class TestListing:
    def test_filters_and_pagination(self, client):
        _upload(client)

        auth = client.get("/projects/proj-1/testcases", params={"module": "Auth"}).json()
        critical = client.get("/projects/proj-1/testcases", params={"priority": "Critical"}).json()
        search = client.get("/projects/proj-1/testcases", params={"search": "logout"}).json()
        paged = client.get("/projects/proj-1/testcases", params={"page": 2, "page_size": 2}).json()
        other = client.get("/projects/other/testcases").json()

        assert auth["total"] == 2
        assert [i["title"] for i in critical["items"]] == ["Pay"]
        assert [i["title"] for i in search["items"]] == ["Logout"]
        assert len(paged["items"]) == 1
        assert paged["total"] == 3
        assert other["total"] == 0

    def test_steps_count(self, client):
        _upload(client)

        items = client.get("/projects/proj-1/testcases", params={"search": "login"}).json()["items"]

        assert items[0]["steps_count"] == 2


def test_sheet_listing(client, make_xlsx):
    data = make_xlsx({"Summary": [["x"]], "Test Cases": [["Title"], ["Login"]]})

    response = client.post(
        "/import/sheets",
        files={"file": ("book.xlsx", data, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
    )

    assert response.status_code == 200
    names = [s["name"] for s in response.json()["sheets"]]
    assert names == ["Test Cases", "Summary"]


def test_sheet_listing_rejects_non_excel(client):
    response = client.post("/import/sheets", files={"file": ("cases.csv", CSV_BODY, "text/csv")})

    assert response.status_code == 400
