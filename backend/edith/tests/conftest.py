import os
os.environ["TESTING"] = "1"
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from edith.main import app
from edith.database import Base, get_db

SQLALCHEMY_DATABASE_URL = "sqlite:///./edith_test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


def operator_headers(operator_id: str | None = None, *, name: str | None = "Dana Reyes", position: str | None = "Lab Technician"):
    """
    purpose: build operator identity headers for API tests
    outputs: dict of X-Operator-* headers with a unique operator id by default
    status: active
    """

    headers = {"X-Operator-Id": operator_id or f"op-{uuid.uuid4().hex[:8]}"}
    if name:
        headers["X-Operator-Name"] = name
    if position:
        headers["X-Operator-Position"] = position
    return headers


def execution_payload(sample_names=("A", "B", "C"), **overrides):
    payload = {
        "study_id": f"study-{uuid.uuid4().hex[:6]}",
        "study_name": "Tensile Strength Round 4",
        "protocol_id": "proto-ts-01",
        "protocol_name": "ASTM D638 Tensile",
        "category": "Mechanical",
        "operator_id": "op-lead",
        "operator_name": "Lead Operator",
        "environment": {"temperature": 22.5, "humidity": 41},
        "samples": [{"name": name, "material": "PLA"} for name in sample_names],
        "tags": ["tensile"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def headers():
    return operator_headers("op-lead", name="Lead Operator")


@pytest.fixture
def create_execution(client, headers):
    """
    purpose: create a study execution through the API and return its JSON body
    inputs: optional sample names plus payload overrides
    status: active
    """

    def _create(sample_names=("A", "B", "C"), **overrides):
        resp = client.post(
            "/api/study-executions",
            json=execution_payload(sample_names, **overrides),
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create


@pytest.fixture
def started_execution(client, headers, create_execution):
    def _start(sample_names=("A", "B", "C"), **overrides):
        execution = create_execution(sample_names, **overrides)
        resp = client.post(f"/api/study-executions/{execution['id']}/start", headers=headers)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _start
