"""Per-sample lifecycle transitions within a study execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import InvalidTransition, ValidationFailed
from ..eventlog import record_execution_event
from ..repository import compare_and_set_status, load_sample
from ..states import (
    TERMINAL_EXECUTION_STATUSES,
    SampleQuality,
    SampleStatus,
    sample_transition,
)
from .progress import format_duration

# purpose: move individual samples through PENDING -> IN_PROGRESS -> COMPLETED/FAILED/SKIPPED
# inputs: sample identifiers plus operator, quality or reason payloads
# outputs: refreshed StudyExecutionSample rows and execution timeline events
# status: active
# depends_on: edith.repository.compare_and_set_status


def _transition(
    db: Session,
    sample_id: UUID,
    action: str,
    values: dict[str, Any],
    *,
    actor_id: str | None,
    event_payload: dict[str, Any] | None = None,
) -> models.StudyExecutionSample:
    sample = load_sample(db, sample_id)
    execution = sample.execution
    if execution.status in TERMINAL_EXECUTION_STATUSES:
        raise InvalidTransition("execution", execution.id, execution.status.value, f"sample {action}")
    allowed, target = sample_transition(action, sample.status, entity_id=sample.id)
    now = datetime.now(timezone.utc)
    values = {"status": target, "updated_at": now, **values}
    sample = compare_and_set_status(db, models.StudyExecutionSample, sample.id, allowed, values)
    record_execution_event(
        db,
        sample.execution_id,
        f"sample.{target.value.lower()}",
        {
            "sample_id": sample.id,
            "sample_number": sample.sample_number,
            "status": target,
            **(event_payload or {}),
        },
        actor_id=actor_id,
    )
    return sample


def start_sample(
    db: Session,
    sample_id: UUID,
    operator: schemas.OperatorContext,
) -> models.StudyExecutionSample:
    """Begin work on a pending sample and record who picked it up."""

    now = datetime.now(timezone.utc)
    return _transition(
        db,
        sample_id,
        "start",
        {
            "started_at": now,
            "operator_id": operator.id,
            "operator_name": operator.display_name,
        },
        actor_id=operator.id,
    )


def complete_sample(
    db: Session,
    sample_id: UUID,
    payload: schemas.SampleComplete,
    *,
    actor_id: str | None = None,
) -> models.StudyExecutionSample:
    """Mark an in-progress sample COMPLETED with a pass/fail/warning verdict."""

    if payload.quality is None or not payload.quality.strip():
        raise ValidationFailed("quality")
    try:
        quality = SampleQuality(payload.quality.strip().lower())
    except ValueError as exc:
        raise ValidationFailed(
            "quality", f"quality must be one of {', '.join(q.value for q in SampleQuality)}"
        ) from exc

    current = load_sample(db, sample_id)
    now = datetime.now(timezone.utc)
    values: dict[str, Any] = {
        "completed_at": now,
        "progress": 100,
        "quality": quality,
        "actual_time": format_duration(models.as_utc(current.started_at), now),
    }
    if payload.notes is not None:
        values["notes"] = payload.notes
    if payload.anomalies:
        values["anomalies"] = [*(current.anomalies or []), *payload.anomalies]
    return _transition(
        db,
        sample_id,
        "complete",
        values,
        actor_id=actor_id,
        event_payload={"quality": quality},
    )


def skip_sample(
    db: Session,
    sample_id: UUID,
    reason: str | None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecutionSample:
    """Skip a sample that will not be processed; a reason is mandatory."""

    if reason is None or not reason.strip():
        raise ValidationFailed("reason")
    return _transition(
        db,
        sample_id,
        "skip",
        {"progress": 100, "notes": reason.strip()},
        actor_id=actor_id,
        event_payload={"reason": reason.strip()},
    )


def fail_sample(
    db: Session,
    sample_id: UUID,
    reason: str | None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecutionSample:
    if reason is None or not reason.strip():
        raise ValidationFailed("reason")
    now = datetime.now(timezone.utc)
    return _transition(
        db,
        sample_id,
        "fail",
        {"progress": 100, "completed_at": now, "notes": reason.strip()},
        actor_id=actor_id,
        event_payload={"reason": reason.strip()},
    )
