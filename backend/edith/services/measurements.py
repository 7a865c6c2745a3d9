"""Append-only measurement ledger for study execution samples."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ValidationFailed
from ..eventlog import record_execution_event
from ..repository import load_execution, load_sample

# purpose: validate and append immutable measurement rows keyed by sample/step/point
# inputs: MeasurementCreate payloads from operators or instruments
# outputs: StudyMeasurement ledger rows; no update or delete path exists
# status: active


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_measurement(payload: schemas.MeasurementCreate) -> None:
    """Raise ValidationFailed naming the first missing required field."""

    if payload.sample_id is None:
        raise ValidationFailed("sample_id")
    if _blank(payload.step_id):
        raise ValidationFailed("step_id")
    if _blank(payload.measurement_id):
        raise ValidationFailed("measurement_id")
    if _blank(payload.operator):
        raise ValidationFailed("operator")
    if payload.value is None and _blank(payload.text_value):
        raise ValidationFailed("value", "value or text_value is required")


def find_by_idempotency_key(db: Session, sample_id: UUID, key: str) -> models.StudyMeasurement | None:
    return (
        db.query(models.StudyMeasurement)
        .filter(
            models.StudyMeasurement.sample_id == sample_id,
            models.StudyMeasurement.idempotency_key == key,
        )
        .one_or_none()
    )


def _next_sequence(db: Session, execution_id: UUID) -> int:
    latest = (
        db.query(func.max(models.StudyMeasurement.sequence))
        .filter(models.StudyMeasurement.execution_id == execution_id)
        .scalar()
    )
    return (latest or 0) + 1


def add_measurement(
    db: Session,
    payload: schemas.MeasurementCreate,
) -> models.StudyMeasurement:
    """Append a measurement to the ledger and return the persisted row.

    Repeated calls for the same sample/step/point add rows rather than
    overwrite. A repeated ``idempotency_key`` for the same sample returns the
    row written by the first call.
    """

    validate_measurement(payload)
    sample = load_sample(db, payload.sample_id)

    if payload.idempotency_key:
        existing = find_by_idempotency_key(db, sample.id, payload.idempotency_key)
        if existing is not None:
            return existing

    measurement = models.StudyMeasurement(
        execution_id=sample.execution_id,
        sample_id=sample.id,
        step_id=payload.step_id.strip(),
        measurement_id=payload.measurement_id.strip(),
        value=payload.value,
        text_value=payload.text_value,
        unit=payload.unit,
        operator=payload.operator.strip(),
        equipment=payload.equipment,
        method=payload.method,
        duration=payload.duration,
        confidence=payload.confidence,
        uncertainty=payload.uncertainty,
        conditions=payload.conditions,
        notes=payload.notes,
        flags=payload.flags,
        raw_data=payload.raw_data,
        calculated_data=payload.calculated_data,
        idempotency_key=payload.idempotency_key,
        sequence=_next_sequence(db, sample.execution_id),
        timestamp=datetime.now(timezone.utc),
    )
    try:
        with db.begin_nested():
            db.add(measurement)
            db.flush()
    except IntegrityError:
        # a concurrent retry with the same key committed first
        existing = (
            find_by_idempotency_key(db, sample.id, payload.idempotency_key)
            if payload.idempotency_key
            else None
        )
        if existing is None:
            raise
        return existing
    record_execution_event(
        db,
        sample.execution_id,
        "measurement.recorded",
        {
            "measurement_row_id": measurement.id,
            "sample_id": sample.id,
            "sample_number": sample.sample_number,
            "step_id": measurement.step_id,
            "measurement_id": measurement.measurement_id,
        },
        actor_id=measurement.operator,
    )
    return measurement


def list_measurements(
    db: Session,
    *,
    sample_id: UUID | None = None,
    execution_id: UUID | None = None,
    step_id: str | None = None,
    measurement_id: str | None = None,
) -> list[models.StudyMeasurement]:
    """Return ledger rows in append order for a sample or an execution."""

    if sample_id is None and execution_id is None:
        raise ValidationFailed("sample_id", "sample_id or execution_id is required")
    query = db.query(models.StudyMeasurement)
    if sample_id is not None:
        load_sample(db, sample_id)
        query = query.filter(models.StudyMeasurement.sample_id == sample_id)
    if execution_id is not None:
        query = query.filter(models.StudyMeasurement.execution_id == execution_id)
    if step_id:
        query = query.filter(models.StudyMeasurement.step_id == step_id)
    if measurement_id:
        query = query.filter(models.StudyMeasurement.measurement_id == measurement_id)
    return query.order_by(
        models.StudyMeasurement.timestamp.asc(),
        models.StudyMeasurement.sequence.asc(),
        models.StudyMeasurement.id.asc(),
    ).all()


def latest_measurements(db: Session, execution_id: UUID) -> list[models.StudyMeasurement]:
    """Reduce an execution's ledger to the newest row per sample/step/point."""

    load_execution(db, execution_id)
    rows = list_measurements(db, execution_id=execution_id)
    latest: dict[tuple[UUID, str, str], models.StudyMeasurement] = {}
    for row in rows:
        latest[(row.sample_id, row.step_id, row.measurement_id)] = row
    return sorted(
        latest.values(),
        key=lambda row: (row.sample.sample_number, row.step_id, row.measurement_id),
    )
