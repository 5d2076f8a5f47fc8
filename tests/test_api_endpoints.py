"""
Integration tests for the attendance and participation routers
"""
from conftest import EXPORT_ROWS, make_xlsx
from main import app
from models.students import Student
from services.attendance_ingestor import AttendanceIngestor
from services.attendance_session import AttendanceSession
from services.auto_decision import AutoDecisionEngine

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def upload(client, rows=EXPORT_ROWS, filename="attendance.xlsx"):
    return client.post(
        "/attendance/upload",
        files={"file": (filename, make_xlsx(rows), XLSX_TYPE)},
    )


class TestUpload:

    def test_upload_reports_counts(self, client):
        rows = EXPORT_ROWS + [["", "z", 90], ["231fa04c33", "x", 85]]
        response = upload(client, rows)

        assert response.status_code == 200
        data = response.json()
        assert data["record_count"] == 2
        assert data["skipped_rows"] == 1
        assert data["duplicate_rows"] == 1

    def test_pdf_is_not_supported(self, client):
        response = client.post(
            "/attendance/upload",
            files={"file": ("attendance.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert response.status_code == 415
        assert "PDF" in response.json()["detail"]

    def test_unknown_extension(self, client):
        response = client.post(
            "/attendance/upload",
            files={"file": ("attendance.txt", b"REGD,TOTAL", "text/plain")},
        )
        assert response.status_code == 400

    def test_missing_header(self, client):
        response = upload(client, [["Name", "Marks"], ["x", 1]])
        assert response.status_code == 400
        assert "header not found" in response.json()["detail"]

    def test_status_and_clear(self, client):
        assert client.get("/attendance/status").json()["loaded"] is False

        upload(client)
        status = client.get("/attendance/status").json()
        assert status["loaded"] is True
        assert status["filename"] == "attendance.xlsx"
        assert status["record_count"] == 2
        assert status["progress"] == 100
        assert status["threshold"] == 75

        assert client.delete("/attendance/file").status_code == 200
        assert client.get("/attendance/status").json()["loaded"] is False


class TestLookups:

    def test_check_identifier(self, client):
        upload(client)
        response = client.get("/attendance/check/C33")

        assert response.status_code == 200
        data = response.json()
        assert data["matched_identifier"] == "231fa04c33"
        assert data["match_type"] == "suffix"
        assert data["percentage"] == 82
        assert data["subjects"] == {"M1": "x"}
        assert data["eligible"] is True

    def test_check_unknown_identifier(self, client):
        upload(client)
        assert client.get("/attendance/check/nobody").status_code == 404

    def test_check_without_sheet(self, client):
        assert client.get("/attendance/check/c33").status_code == 409

    def test_eligibility_for_participation(self, client, seeded):
        upload(client)
        response = client.get(f"/attendance/eligibility/{seeded['c99']}")

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is False
        assert data["current_attendance"] == 60
        assert data["short_by"] == 15

    def test_eligibility_unknown_participation(self, client, seeded):
        upload(client)
        assert client.get("/attendance/eligibility/9999").status_code == 404

    def test_below_threshold(self, client):
        upload(client)
        data = client.get("/attendance/below-threshold").json()
        assert data == [{"identifier": "231fa04c99", "percentage": 60.0, "short_by": 15.0}]


    def test_below_threshold_with_custom_threshold(self, client):
        upload(client)
        assert client.get("/attendance/below-threshold", params={"threshold": 50}).json() == []

        data = client.get("/attendance/below-threshold", params={"threshold": 90}).json()
        assert [item["identifier"] for item in data] == ["231fa04c33", "231fa04c99"]
        assert data[0]["short_by"] == 8

    def test_bulk_check(self, client):
        upload(client)
        response = client.post("/attendance/bulk-check", json={"identifiers": ["c33", "c99", "nobody"]})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["eligible"] == 1
        assert data["not_eligible"] == 1
        assert data["not_found"] == 1
        details = {d["identifier"]: d for d in data["details"]}
        assert details["c33"]["matched_identifier"] == "231fa04c33"
        assert details["c99"]["short_by"] == 15
        assert details["nobody"]["found"] is False
        assert details["nobody"]["eligible"] is False

    def test_bulk_check_requires_identifier_list(self, client):
        upload(client)
        assert client.post("/attendance/bulk-check", json={}).status_code == 422

    def test_report_joins_students_with_sheet(self, client, seeded):
        upload(client)
        data = client.get("/attendance/report").json()

        assert [s["registration_number"] for s in data["students"]] == ["c33", "c99"]
        assert data["stats"] == {
            "total_students": 2,
            "eligible": 1,
            "not_eligible": 1,
            "average_attendance": 71,
            "highest_attendance": 82,
            "lowest_attendance": 60,
            "unmatched_students": 2,
        }

    def test_report_filters(self, client, seeded, db_session):
        db_session.query(Student).filter(Student.registration_number == "c33").update(
            {"department": "CSE", "year": 2}
        )
        db_session.commit()
        upload(client)

        data = client.get("/attendance/report", params={"department": "CSE", "year": 2}).json()
        assert [s["registration_number"] for s in data["students"]] == ["c33"]
        assert data["filters"]["department"] == "CSE"

        data = client.get("/attendance/report", params={"min_attendance": 50, "max_attendance": 70}).json()
        assert [s["registration_number"] for s in data["students"]] == ["c99"]

    def test_report_without_sheet(self, client, seeded):
        assert client.get("/attendance/report").status_code == 409


class TestAutoProcess:

    def test_end_to_end(self, client, seeded):
        upload(client)
        response = client.post("/attendance/auto-process")

        assert response.status_code == 200
        data = response.json()
        assert data["approved"] == 1
        assert data["rejected"] == 1
        assert data["not_found"] == 1
        assert data["failed"] == 0
        assert data["pending_after"] == 1

        statuses = {p["id"]: p for p in client.get("/participations").json()}
        assert statuses[seeded["c33"]]["status"] == "approved"
        assert statuses[seeded["c33"]]["approved_by"] == "auto-attendance"
        assert statuses[seeded["c33"]]["attendance_percentage"] == 82
        assert statuses[seeded["c99"]]["status"] == "rejected"
        assert "below the required 75%" in statuses[seeded["c99"]]["rejection_reason"]
        assert statuses[seeded["zz1"]]["status"] == "pending"
        assert statuses[seeded["fa04c33x"]]["status"] == "approved"
        assert statuses[seeded["fa04c33x"]]["approved_by"] is None

    def test_second_run_is_skipped(self, client, seeded):
        upload(client)
        client.post("/attendance/auto-process")
        data = client.post("/attendance/auto-process").json()

        assert data["already_processed"] is True
        assert data["total"] == 0

    def test_requires_uploaded_sheet(self, client, seeded):
        assert client.post("/attendance/auto-process").status_code == 409


    def test_store_outage_returns_503_and_allows_retry(self, client, make_store):
        store = make_store("c33", "c99", fail_list=True)
        app.state.attendance_session = AttendanceSession(AttendanceIngestor(), AutoDecisionEngine(store))
        upload(client)

        response = client.post("/attendance/auto-process")
        assert response.status_code == 503

        store.fail_list = False
        data = client.post("/attendance/auto-process").json()
        assert data["already_processed"] is False
        assert data["approved"] == 1
        assert data["rejected"] == 1


class TestParticipations:

    def test_list_filters_by_status(self, client, seeded):
        pending = client.get("/participations", params={"status": "pending"}).json()
        assert sorted(p["registration_number"] for p in pending) == ["c33", "c99", "zz1"]
        assert client.get("/participations", params={"status": "bogus"}).status_code == 400

    def test_manual_approve(self, client, seeded):
        response = client.put(f"/participations/{seeded['zz1']}/approve")
        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["approved_by"] == "admin"

    def test_manual_reject_with_reason(self, client, seeded):
        response = client.put(f"/participations/{seeded['zz1']}/reject", json={"reason": "No evidence"})
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "No evidence"

    def test_only_pending_can_be_decided(self, client, seeded):
        assert client.put(f"/participations/{seeded['fa04c33x']}/reject").status_code == 409
        assert client.put("/participations/9999/approve").status_code == 404
