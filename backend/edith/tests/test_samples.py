import uuid

from .conftest import operator_headers

BASE = "/api/study-executions"


def _first_sample(execution):
    return min(execution["samples"], key=lambda s: s["sample_number"])["id"]


def test_start_sample_records_operator(client, started_execution):
    execution = started_execution(("A",))
    sample_id = _first_sample(execution)
    bench = operator_headers("op-bench", name="Bench Tech")

    resp = client.post(f"{BASE}/samples/{sample_id}/start", headers=bench)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "IN_PROGRESS"
    assert body["started_at"] is not None
    assert body["operator_id"] == "op-bench"
    assert body["operator_name"] == "Bench Tech"

    assert client.post(f"{BASE}/samples/{sample_id}/start", headers=bench).status_code == 409


def test_complete_sample_requires_quality(client, headers, started_execution):
    execution = started_execution(("A",))
    sample_id = _first_sample(execution)
    client.post(f"{BASE}/samples/{sample_id}/start", headers=headers)

    missing = client.post(f"{BASE}/samples/{sample_id}/complete", json={}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["detail"]["message"] == "quality is required"

    bogus = client.post(f"{BASE}/samples/{sample_id}/complete", json={"quality": "great"}, headers=headers)
    assert bogus.status_code == 400

    resp = client.post(
        f"{BASE}/samples/{sample_id}/complete",
        json={"quality": "WARNING", "notes": "slight necking", "anomalies": ["grip slip"]},
        headers=headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "COMPLETED"
    assert body["quality"] == "warning"
    assert body["progress"] == 100
    assert body["completed_at"] is not None
    assert body["actual_time"] is not None
    assert body["anomalies"] == ["grip slip"]
    assert body["notes"] == "slight necking"


def test_complete_requires_started_sample(client, headers, started_execution):
    execution = started_execution(("A",))
    sample_id = _first_sample(execution)
    resp = client.post(f"{BASE}/samples/{sample_id}/complete", json={"quality": "pass"}, headers=headers)
    assert resp.status_code == 409
    assert "PENDING" in resp.json()["detail"]["message"]


def test_skip_requires_reason_and_blocks_restart(client, headers, started_execution):
    execution = started_execution(("A",))
    sample_id = _first_sample(execution)

    assert client.post(f"{BASE}/samples/{sample_id}/skip", json={"reason": " "}, headers=headers).status_code == 400
    resp = client.post(f"{BASE}/samples/{sample_id}/skip", json={"reason": "below tolerance"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "SKIPPED"
    assert resp.json()["notes"] == "below tolerance"

    assert client.post(f"{BASE}/samples/{sample_id}/start", headers=headers).status_code == 409
    assert client.post(f"{BASE}/samples/{sample_id}/skip", json={"reason": "again"}, headers=headers).status_code == 409


def test_fail_sample_counts_as_not_done(client, headers, started_execution):
    execution = started_execution(("A", "B"))
    sample_id = _first_sample(execution)
    assert client.post(f"{BASE}/samples/{sample_id}/fail", json={"reason": "jammed"}, headers=headers).status_code == 409

    client.post(f"{BASE}/samples/{sample_id}/start", headers=headers)
    resp = client.post(f"{BASE}/samples/{sample_id}/fail", json={"reason": "jammed"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "FAILED"

    view = client.get(f"{BASE}/{execution['id']}", headers=headers).json()
    assert view["current_step"] == 0
    assert view["progress"] == 0
    assert view["failed_samples"] == 0


def test_samples_allowed_while_execution_not_started(client, headers, create_execution):
    execution = create_execution(("A",))
    sample_id = _first_sample(execution)
    resp = client.post(f"{BASE}/samples/{sample_id}/start", headers=headers)
    assert resp.status_code == 200


def test_unknown_sample(client, headers):
    resp = client.post(f"{BASE}/samples/{uuid.uuid4()}/start", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "SAMPLE_NOT_FOUND"
