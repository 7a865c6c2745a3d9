import uuid
from datetime import datetime, timedelta, timezone

from edith import models, tasks
from edith.states import ExportStatus

BASE = "/api/study-executions"


def test_expire_study_exports_task(client, headers, create_execution, db_session, session_factory, monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    execution = create_execution(("A",))

    stale = client.post(
        f"{BASE}/{execution['id']}/exports", json={"format": "csv", "type": "sample_results"}, headers=headers
    ).json()
    fresh = client.post(
        f"{BASE}/{execution['id']}/exports", json={"format": "json", "type": "summary_only"}, headers=headers
    ).json()
    finished = client.post(
        f"{BASE}/{execution['id']}/exports", json={"format": "pdf", "type": "complete_report"}, headers=headers
    ).json()
    client.post(f"{BASE}/exports/{finished['id']}/status", json={"status": "IN_PROGRESS"}, headers=headers)
    client.post(f"{BASE}/exports/{finished['id']}/status", json={"status": "COMPLETED"}, headers=headers)

    past = datetime.now(timezone.utc) - timedelta(hours=1)
    for export_id in (stale["id"], finished["id"]):
        row = db_session.get(models.StudyExport, uuid.UUID(export_id))
        row.expires_at = past
    db_session.commit()

    result = tasks.expire_study_exports.delay().get()
    assert stale["id"] in result
    assert fresh["id"] not in result
    assert finished["id"] not in result

    db_session.expire_all()
    assert db_session.get(models.StudyExport, uuid.UUID(stale["id"])).status == ExportStatus.EXPIRED
    assert db_session.get(models.StudyExport, uuid.UUID(fresh["id"])).status == ExportStatus.PENDING
    assert db_session.get(models.StudyExport, uuid.UUID(finished["id"])).status == ExportStatus.COMPLETED

    assert tasks.expire_study_exports.delay().get() == []


def test_expire_study_exports_reference_time(client, headers, create_execution, session_factory, monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    execution = create_execution(("A",))
    export = client.post(
        f"{BASE}/{execution['id']}/exports", json={"format": "csv", "type": "template"}, headers=headers
    ).json()

    future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    result = tasks.expire_study_exports.delay(future).get()
    assert export["id"] in result


def test_beat_schedule_registered():
    entry = tasks.celery_app.conf.beat_schedule["study-export-expiry"]
    assert entry["task"] == "edith.tasks.expire_study_exports"
    assert tasks.celery_app.conf.task_always_eager is True
