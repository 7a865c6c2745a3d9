import uuid
from datetime import datetime, timedelta, timezone

from edith import models
from edith.services.exports import export_filename
from edith.states import ExportFormat, ExportStatus, ExportType

BASE = "/api/study-executions"


def _request(client, headers, execution_id, **overrides):
    body = {"format": "pdf", "type": "complete_report"}
    body.update(overrides)
    return client.post(f"{BASE}/{execution_id}/exports", json=body, headers=headers)


def _force_overdue(db_session, export_id):
    export = db_session.get(models.StudyExport, uuid.UUID(export_id))
    export.expires_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    db_session.commit()


def test_export_filename_format():
    requested = datetime(2026, 3, 7, 15, 30, tzinfo=timezone.utc)
    assert export_filename(ExportFormat.EXCEL, ExportType.SAMPLE_RESULTS, requested) == (
        "edith-sample-results-2026-03-07.excel"
    )
    assert export_filename(ExportFormat.JSON, ExportType.SUMMARY_ONLY, requested) == (
        "edith-summary-only-2026-03-07.json"
    )


def test_request_export_defaults(client, headers, create_execution):
    execution = create_execution(("A",))
    resp = _request(client, headers, execution["id"], include_raw_data=True)
    assert resp.status_code == 201
    export = resp.json()
    assert export["status"] == "PENDING"
    assert export["progress"] == 0
    assert export["format"] == "PDF"
    assert export["type"] == "COMPLETE_REPORT"
    assert export["execution_id"] == execution["id"]
    assert export["study_id"] == execution["study_id"]
    assert export["include_charts"] is True
    assert export["include_raw_data"] is True
    assert export["requested_by_id"] == "op-lead"
    assert export["requested_by"] == "Lead Operator"
    assert export["download_count"] == 0
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    assert export["filename"] in {
        f"edith-complete-report-{today}.pdf",
        f"edith-complete-report-{(datetime.now(timezone.utc) - timedelta(days=1)).strftime('%Y-%m-%d')}.pdf",
    }
    assert export["expires_at"] is not None

    listed = client.get(f"{BASE}/{execution['id']}/exports", headers=headers)
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()] == [export["id"]]

    fetched = client.get(f"{BASE}/exports/{export['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["filename"] == export["filename"]


def test_request_export_validation(client, headers, create_execution):
    execution = create_execution(("A",))
    bad_format = _request(client, headers, execution["id"], format="docx")
    assert bad_format.status_code == 400
    assert "format" in bad_format.json()["detail"]["message"]

    missing_type = _request(client, headers, execution["id"], type=None)
    assert missing_type.status_code == 400
    assert bad_format.json()["detail"]["code"] == "VALIDATION_FAILED"

    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    assert _request(client, headers, execution["id"], expires_at=past).status_code == 400

    assert _request(client, headers, str(uuid.uuid4())).status_code == 404


def test_export_does_not_block_execution(client, headers, started_execution):
    execution = started_execution(("A",))
    first = _request(client, headers, execution["id"])
    second = _request(client, headers, execution["id"], format="csv", type="measurements_only")
    assert first.status_code == 201
    assert second.status_code == 201

    paused = client.post(f"{BASE}/{execution['id']}/pause", headers=headers)
    assert paused.status_code == 200
    assert len(paused.json()["exports"]) == 2


def test_export_status_lifecycle_and_download(client, headers, create_execution):
    execution = create_execution(("A",))
    export = _request(client, headers, execution["id"]).json()
    status_url = f"{BASE}/exports/{export['id']}/status"

    early = client.post(f"{BASE}/exports/{export['id']}/download", headers=headers)
    assert early.status_code == 409

    skipped_ahead = client.post(status_url, json={"status": "COMPLETED"}, headers=headers)
    assert skipped_ahead.status_code == 409

    running = client.post(status_url, json={"status": "in_progress", "progress": 40}, headers=headers)
    assert running.status_code == 200
    assert running.json()["status"] == "IN_PROGRESS"
    assert running.json()["progress"] == 40
    assert running.json()["started_at"] is not None

    more = client.post(status_url, json={"status": "IN_PROGRESS", "progress": 80}, headers=headers)
    assert more.json()["progress"] == 80

    done = client.post(
        status_url,
        json={"status": "COMPLETED", "filepath": "/exports/report.pdf", "size": 20480},
        headers=headers,
    )
    assert done.status_code == 200
    body = done.json()
    assert body["status"] == "COMPLETED"
    assert body["progress"] == 100
    assert body["completed_at"] is not None
    assert body["filepath"] == "/exports/report.pdf"
    assert body["size"] == 20480

    assert client.post(status_url, json={"status": "FAILED"}, headers=headers).status_code == 409

    for expected in (1, 2):
        downloaded = client.post(f"{BASE}/exports/{export['id']}/download", headers=headers)
        assert downloaded.status_code == 200
        assert downloaded.json()["download_count"] == expected
        assert downloaded.json()["last_download_at"] is not None


def test_failed_export_collects_errors(client, headers, create_execution):
    execution = create_execution(("A",))
    export = _request(client, headers, execution["id"], format="excel").json()
    resp = client.post(
        f"{BASE}/exports/{export['id']}/status",
        json={"status": "FAILED", "errors": ["template missing"]},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "FAILED"
    assert resp.json()["errors"] == ["template missing"]
    assert client.post(
        f"{BASE}/exports/{export['id']}/status", json={"status": "IN_PROGRESS"}, headers=headers
    ).status_code == 409


def test_export_status_rejects_unknown_value(client, headers, create_execution):
    execution = create_execution(("A",))
    export = _request(client, headers, execution["id"]).json()
    resp = client.post(f"{BASE}/exports/{export['id']}/status", json={"status": "SHIPPED"}, headers=headers)
    assert resp.status_code == 400
    resp = client.post(f"{BASE}/exports/{export['id']}/status", json={"status": "PENDING"}, headers=headers)
    assert resp.status_code == 409


def test_expiry_rules(client, headers, create_execution, db_session):
    execution = create_execution(("A",))
    export = _request(client, headers, execution["id"]).json()
    status_url = f"{BASE}/exports/{export['id']}/status"

    premature = client.post(status_url, json={"status": "EXPIRED"}, headers=headers)
    assert premature.status_code == 409

    _force_overdue(db_session, export["id"])

    late = client.post(status_url, json={"status": "IN_PROGRESS"}, headers=headers)
    assert late.status_code == 409
    assert "expired" in late.json()["detail"]["message"]

    expired = client.post(status_url, json={"status": "EXPIRED"}, headers=headers)
    assert expired.status_code == 200
    assert expired.json()["status"] == "EXPIRED"


def test_export_survives_as_record(client, headers, create_execution, db_session):
    execution = create_execution(("A",))
    export = _request(client, headers, execution["id"]).json()
    stored = db_session.get(models.StudyExport, uuid.UUID(export["id"]))
    assert stored.status == ExportStatus.PENDING
    assert stored.format == ExportFormat.PDF
    assert stored.type == ExportType.COMPLETE_REPORT

    events = client.get(
        f"{BASE}/{execution['id']}/events", params={"event_type": "export."}, headers=headers
    ).json()
    assert events[0]["event_type"] == "export.requested"
    assert events[0]["payload"]["export_id"] == export["id"]
    assert events[0]["payload"]["execution_status"] == "NOT_STARTED"
