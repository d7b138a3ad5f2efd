"""API tests for the FastAPI application."""

import csv
import logging
from io import StringIO

import pytest
from fastapi.testclient import TestClient

from edusafe import main
from edusafe.main import app, results_cache

ATTENDANCE_CSV = b"StudentID,AttendancePercentage\nSTU001,85\nSTU002,62\nSTU003,70\n"
ASSESSMENT_CSV = b"StudentID,TestScore1,TestScore2,TestScore3\nSTU001,75,80,72\nSTU002,45,38,32\n"
ATTEMPTS_CSV = b"StudentID,AttemptsUsed\nSTU001,1\nSTU002,3\nSTU004,2\n"


@pytest.fixture
def client():
    results_cache.clear()
    yield TestClient(app)
    results_cache.clear()


def upload(client, attendance=ATTENDANCE_CSV, assessment=ASSESSMENT_CSV, attempts=ATTEMPTS_CSV):
    return client.post(
        "/upload",
        files={
            "attendance_file": ("attendance.csv", attendance, "text/csv"),
            "assessment_file": ("assessment.csv", assessment, "text/csv"),
            "attempts_file": ("attempts.csv", attempts, "text/csv"),
        },
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_upload_scores_all_students(client):
    """Test the full upload pipeline and response shape."""
    response = upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True

    results = body["results"]
    assert [r["student_id"] for r in results] == ["STU002", "STU003", "STU004", "STU001"]
    assert results[0]["score"] == 100
    assert results[0]["tier"] == "At Risk"
    assert results[-1]["score"] == 0
    assert results[-1]["tier"] == "Safe"

    assert body["summary"] == {"safe": 3, "watchlist": 0, "at_risk": 1}
    assert body["percentages"]["at_risk"] == 25.0
    assert body["alert"] == "1 student is At Risk and may need immediate support."


def test_upload_partial_student_keeps_missing_fields_null(client):
    body = upload(client).json()
    stu004 = next(r for r in body["results"] if r["student_id"] == "STU004")

    assert stu004["source_record"]["attendance_pct"] is None
    assert stu004["source_record"]["scores"] == [None, None, None]
    assert stu004["score"] == 20


def test_upload_without_at_risk_students_has_no_alert(client):
    response = upload(
        client,
        attendance=b"StudentID,AttendancePercentage\nA,90\n",
        assessment=b"StudentID,TestScore1,TestScore2,TestScore3\nA,70,75,80\n",
        attempts=b"StudentID,AttemptsUsed\nA,0\n",
    )

    assert response.status_code == 200
    assert response.json()["alert"] is None


def test_upload_requires_all_three_files(client):
    response = client.post(
        "/upload",
        files={"attendance_file": ("attendance.csv", ATTENDANCE_CSV, "text/csv")},
    )
    assert response.status_code == 422


def test_upload_rejects_non_csv(client):
    response = client.post(
        "/upload",
        files={
            "attendance_file": ("attendance.xlsx", ATTENDANCE_CSV, "application/octet-stream"),
            "assessment_file": ("assessment.csv", ASSESSMENT_CSV, "text/csv"),
            "attempts_file": ("attempts.csv", ATTEMPTS_CSV, "text/csv"),
        },
    )
    assert response.status_code == 400
    assert "CSV" in response.json()["detail"]


def test_upload_rejects_oversized_file(client, monkeypatch):
    monkeypatch.setattr(main, "MAX_UPLOAD_SIZE", 10)
    response = upload(client)
    assert response.status_code == 413


def test_upload_bad_columns_returns_400(client):
    response = upload(client, attempts=b"StudentID,Whatever\nA,1\n")

    assert response.status_code == 400
    assert "AttemptsUsed" in response.json()["detail"]


def test_upload_empty_datasets_returns_400(client):
    response = upload(
        client,
        attendance=b"StudentID,AttendancePercentage\n",
        assessment=b"StudentID,TestScore1,TestScore2,TestScore3\n",
        attempts=b"StudentID,AttemptsUsed\n",
    )
    assert response.status_code == 400


def test_results_before_upload(client):
    assert client.get("/results").status_code == 404
    assert client.get("/download.csv").status_code == 404


def test_results_after_upload(client):
    upload(client)
    response = client.get("/results")

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"]
    assert len(body["results"]) == 4


def test_download_csv(client):
    """Test CSV export of the latest analysis."""
    upload(client)
    response = client.get("/download.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")

    rows = list(csv.reader(StringIO(response.text)))
    assert rows[0][0] == "Student ID"
    assert rows[1][0] == "STU002"
    assert rows[1][7] == "At Risk"
    assert rows[1][8] == "Low attendance; Low average score; Declining test scores; Repeated exam attempts"

    stu004 = next(row for row in rows if row[0] == "STU004")
    assert stu004[1:5] == ["", "", "", ""]
    assert stu004[5] == "2"


def test_email_draft(client):
    upload(client)
    response = client.post("/email-draft", json={"student_id": "STU002"})

    assert response.status_code == 200
    body = response.json()
    assert "STU002" in body["subject"]
    assert "Attendance 62.0% is below 75%" in body["body"]


def test_email_draft_unknown_student(client):
    upload(client)
    response = client.post("/email-draft", json={"student_id": "NOPE"})
    assert response.status_code == 404


def test_resolve_log_level():
    """Unknown LOG_LEVEL names fall back to INFO instead of failing at import."""
    assert main.resolve_log_level("debug") == logging.DEBUG
    assert main.resolve_log_level(" WARNING ") == logging.WARNING
    assert main.resolve_log_level("verbose") == logging.INFO
    assert main.resolve_log_level(None) == logging.INFO


def test_upload_with_trailing_delimiters(client):
    response = upload(
        client,
        attendance=b"StudentID,AttendancePercentage\nSTU001,85,\nSTU002,62,\n",
        assessment=b"StudentID,TestScore1,TestScore2,TestScore3\nSTU001,75,80,72,\nSTU002,45,38,32,\n",
        attempts=b"StudentID,AttemptsUsed\nSTU001,1,\nSTU002,3,\n",
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert [(r["student_id"], r["score"]) for r in results] == [("STU002", 100), ("STU001", 0)]
