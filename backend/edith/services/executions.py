"""Study execution aggregate lifecycle orchestration."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy import String, cast
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from ..errors import ValidationFailed
from ..eventlog import record_execution_event
from ..repository import compare_and_set_status, load_execution
from ..states import (
    TERMINAL_EXECUTION_STATUSES,
    ExecutionStatus,
    execution_transition,
)
from . import progress as aggregator

# purpose: own the execution state machine and freeze derived statistics on completion
# inputs: creation payloads, execution identifiers, pause/complete/cancel metadata
# outputs: StudyExecution rows with samples, timeline events, response snapshots
# status: active
# depends_on: edith.services.progress, edith.repository

_SORT_COLUMNS = {
    "created_at": models.StudyExecution.created_at,
    "started_at": models.StudyExecution.started_at,
    "completed_at": models.StudyExecution.completed_at,
    "study_name": models.StudyExecution.study_name,
    "status": models.StudyExecution.status,
    "progress": models.StudyExecution.progress,
}


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_execution_payload(payload: schemas.StudyExecutionCreate) -> None:
    """Raise ValidationFailed naming the first missing required field."""

    for field in ("study_name", "protocol_name", "category", "operator_id"):
        if _blank(getattr(payload, field)):
            raise ValidationFailed(field)
    if not payload.samples:
        raise ValidationFailed("samples", "at least one sample is required")
    for index, sample in enumerate(payload.samples, start=1):
        if _blank(sample.name):
            raise ValidationFailed(f"samples[{index}].name", f"sample {index} name is required")


def create_execution(
    db: Session,
    payload: schemas.StudyExecutionCreate,
    operator: schemas.OperatorContext,
) -> models.StudyExecution:
    """Create an execution and all of its numbered samples in one unit of work."""

    validate_execution_payload(payload)
    now = datetime.now(timezone.utc)
    operator_id = payload.operator_id.strip()
    same_operator = operator_id == operator.id
    operator_name = payload.operator_name or (operator.display_name if same_operator else None)
    operator_position = payload.operator_position or (operator.position if same_operator else None)

    execution = models.StudyExecution(
        study_id=payload.study_id,
        study_name=payload.study_name.strip(),
        protocol_id=payload.protocol_id,
        protocol_name=payload.protocol_name.strip(),
        category=payload.category.strip(),
        operator_id=operator_id,
        operator_name=operator_name,
        operator_position=operator_position,
        created_by_id=operator.id,
        status=ExecutionStatus.NOT_STARTED,
        progress=0.0,
        current_step=0,
        total_steps=len(payload.samples),
        environment=payload.environment,
        test_conditions=payload.test_conditions,
        estimated_duration=payload.estimated_duration,
        notes=payload.notes,
        tags=payload.tags,
        meta=payload.meta,
        created_at=now,
        updated_at=now,
    )
    execution.samples = [
        models.StudyExecutionSample(
            sample_number=number,
            name=spec.name.strip(),
            description=spec.description,
            material=spec.material,
            properties=spec.properties,
            estimated_time=spec.estimated_time,
            notes=spec.notes,
            batch_number=spec.batch_number,
            lot_number=spec.lot_number,
            location=spec.location,
            tags=spec.tags,
            operator_id=operator_id,
            operator_name=operator_name,
            created_at=now,
            updated_at=now,
        )
        for number, spec in enumerate(payload.samples, start=1)
    ]
    db.add(execution)
    db.flush()
    record_execution_event(
        db,
        execution.id,
        "execution.created",
        {"total_steps": execution.total_steps, "study_name": execution.study_name},
        actor_id=operator.id,
    )
    return execution


def _transition(
    db: Session,
    execution_id: UUID,
    action: str,
    values: dict[str, Any],
    *,
    actor_id: str | None,
    event_payload: dict[str, Any] | None = None,
) -> models.StudyExecution:
    execution = load_execution(db, execution_id)
    previous = execution.status
    allowed, target = execution_transition(action, previous, entity_id=execution.id)
    values = {"status": target, "updated_at": datetime.now(timezone.utc), **values}
    compare_and_set_status(db, models.StudyExecution, execution.id, allowed, values)
    record_execution_event(
        db,
        execution.id,
        f"execution.{action}",
        {"from": previous, "to": target, **(event_payload or {})},
        actor_id=actor_id,
    )
    return load_execution(db, execution.id)


def start_execution(db: Session, execution_id: UUID, *, actor_id: str | None = None) -> models.StudyExecution:
    now = datetime.now(timezone.utc)
    return _transition(
        db,
        execution_id,
        "start",
        {"started_at": now, "progress": 0.0},
        actor_id=actor_id,
    )


def pause_execution(
    db: Session,
    execution_id: UUID,
    notes: str | None = None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecution:
    values: dict[str, Any] = {"paused_at": datetime.now(timezone.utc)}
    if notes is not None:
        values["notes"] = notes
    return _transition(
        db, execution_id, "pause", values, actor_id=actor_id, event_payload={"notes": notes}
    )


def resume_execution(db: Session, execution_id: UUID, *, actor_id: str | None = None) -> models.StudyExecution:
    return _transition(db, execution_id, "resume", {"paused_at": None}, actor_id=actor_id)


def _frozen_statistics(execution: models.StudyExecution) -> dict[str, Any]:
    snapshot = aggregator.recompute(execution.samples)
    return {
        "passed_samples": snapshot.passed_samples,
        "failed_samples": snapshot.failed_samples,
        "overall_status": snapshot.overall_status,
        "current_step": snapshot.current_step,
        "completion_percentage": snapshot.completion_percentage,
    }


def complete_execution(
    db: Session,
    execution_id: UUID,
    summary: str | None = None,
    recommendations: str | None = None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecution:
    """Finish an execution, freezing pass/fail statistics from its samples."""

    execution = load_execution(db, execution_id)
    now = datetime.now(timezone.utc)
    stats = _frozen_statistics(execution)
    values = {
        **stats,
        "completed_at": now,
        "progress": 100.0,
        "completion_percentage": 100,
        "paused_at": None,
        "summary": summary,
        "recommendations": recommendations,
        "actual_duration": aggregator.format_duration(models.as_utc(execution.started_at), now),
    }
    return _transition(
        db,
        execution_id,
        "complete",
        values,
        actor_id=actor_id,
        event_payload={
            "overall_status": stats["overall_status"],
            "passed_samples": stats["passed_samples"],
            "failed_samples": stats["failed_samples"],
        },
    )


def cancel_execution(
    db: Session,
    execution_id: UUID,
    reason: str | None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecution:
    if _blank(reason):
        raise ValidationFailed("reason")
    return _transition(
        db,
        execution_id,
        "cancel",
        {"notes": reason.strip(), "paused_at": None},
        actor_id=actor_id,
        event_payload={"reason": reason.strip()},
    )


def fail_execution(
    db: Session,
    execution_id: UUID,
    reason: str | None,
    *,
    actor_id: str | None = None,
) -> models.StudyExecution:
    if _blank(reason):
        raise ValidationFailed("reason")
    execution = load_execution(db, execution_id)
    snapshot = aggregator.recompute(execution.samples)
    values = {
        **_frozen_statistics(execution),
        "progress": snapshot.progress,
        "completed_at": datetime.now(timezone.utc),
        "paused_at": None,
        "notes": reason.strip(),
    }
    return _transition(
        db, execution_id, "fail", values, actor_id=actor_id, event_payload={"reason": reason.strip()}
    )


def refresh_progress(db: Session, execution_id: UUID, *, actor_id: str | None = None) -> models.StudyExecution:
    """Persist aggregator output on an open execution.

    The write is conditioned on the status observed with the sample snapshot,
    so a concurrent completion is not overwritten with live values.
    """

    execution = load_execution(db, execution_id)
    if execution.status in TERMINAL_EXECUTION_STATUSES:
        return execution
    snapshot = aggregator.recompute(execution.samples)
    compare_and_set_status(
        db,
        models.StudyExecution,
        execution.id,
        [execution.status],
        {
            "progress": snapshot.progress,
            "current_step": snapshot.current_step,
            "passed_samples": snapshot.passed_samples,
            "failed_samples": snapshot.failed_samples,
            "completion_percentage": snapshot.completion_percentage,
            "overall_status": snapshot.overall_status,
            "updated_at": datetime.now(timezone.utc),
        },
    )
    record_execution_event(
        db,
        execution.id,
        "execution.progress",
        {"progress": snapshot.progress, "current_step": snapshot.current_step},
        actor_id=actor_id,
    )
    return load_execution(db, execution.id)


def get_execution(db: Session, execution_id: UUID) -> models.StudyExecution:
    return load_execution(db, execution_id, with_ledger=True)


def _like_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_executions(
    db: Session,
    filters: schemas.StudyExecutionFilters,
    pagination: schemas.Pagination,
) -> tuple[list[models.StudyExecution], int]:
    """Return one page of executions matching ``filters`` and the total match count."""

    query = db.query(models.StudyExecution)
    if filters.status:
        query = query.filter(models.StudyExecution.status.in_(filters.status))
    if filters.operator_id:
        query = query.filter(models.StudyExecution.operator_id == filters.operator_id)
    if filters.study_id:
        query = query.filter(models.StudyExecution.study_id == filters.study_id)
    if filters.category:
        pattern = f"%{_like_literal(filters.category)}%"
        query = query.filter(models.StudyExecution.category.ilike(pattern, escape="\\"))
    if filters.date_from:
        query = query.filter(models.StudyExecution.created_at >= filters.date_from)
    if filters.date_to:
        query = query.filter(models.StudyExecution.created_at <= filters.date_to)
    if filters.search:
        term = f"%{_like_literal(filters.search)}%"
        query = query.filter(
            sa.or_(
                models.StudyExecution.study_name.ilike(term, escape="\\"),
                models.StudyExecution.protocol_name.ilike(term, escape="\\"),
                models.StudyExecution.operator_name.ilike(term, escape="\\"),
                models.StudyExecution.notes.ilike(term, escape="\\"),
            )
        )
    for tag in filters.tags:
        pattern = f'%"{_like_literal(tag)}"%'
        query = query.filter(cast(models.StudyExecution.tags, String).like(pattern, escape="\\"))

    total = query.count()
    column = _SORT_COLUMNS[pagination.sort_by]
    ordering = column.asc() if pagination.sort_order == "asc" else column.desc()
    rows = (
        query.options(selectinload(models.StudyExecution.samples))
        .order_by(ordering, models.StudyExecution.id.asc())
        .offset((pagination.page - 1) * pagination.limit)
        .limit(pagination.limit)
        .all()
    )
    return rows, total


def build_page(
    rows: list[models.StudyExecution],
    total: int,
    pagination: schemas.Pagination,
) -> schemas.StudyExecutionPage:
    total_pages = math.ceil(total / pagination.limit) if total else 0
    return schemas.StudyExecutionPage(
        data=[serialize_summary(row) for row in rows],
        total=total,
        page=pagination.page,
        limit=pagination.limit,
        total_pages=total_pages,
        has_next=pagination.page < total_pages,
        has_prev=pagination.page > 1,
    )


def _live_overlay(execution: models.StudyExecution) -> dict[str, Any]:
    if execution.status in TERMINAL_EXECUTION_STATUSES:
        return {}
    snapshot = aggregator.recompute(execution.samples)
    return {
        "progress": snapshot.progress,
        "current_step": snapshot.current_step,
        "passed_samples": snapshot.passed_samples,
        "failed_samples": snapshot.failed_samples,
        "completion_percentage": snapshot.completion_percentage,
        "overall_status": snapshot.overall_status,
    }


def serialize_summary(execution: models.StudyExecution) -> schemas.StudyExecutionSummary:
    """Summary view; open executions report live aggregator values."""

    base = schemas.StudyExecutionSummary.model_validate(execution)
    return base.model_copy(update=_live_overlay(execution))


def serialize_execution(execution: models.StudyExecution) -> schemas.StudyExecutionOut:
    base = schemas.StudyExecutionOut.model_validate(execution)
    return base.model_copy(update=_live_overlay(execution))


def summarize_execution(db: Session, execution_id: UUID) -> schemas.StudyExecutionDigest:
    execution = load_execution(db, execution_id)
    view = serialize_summary(execution)
    measurements_count = (
        db.query(sa.func.count(models.StudyMeasurement.id))
        .filter(models.StudyMeasurement.execution_id == execution.id)
        .scalar()
    )
    exports_count = (
        db.query(sa.func.count(models.StudyExport.id))
        .filter(models.StudyExport.execution_id == execution.id)
        .scalar()
    )
    return schemas.StudyExecutionDigest(
        execution_id=execution.id,
        status=view.status,
        overall_status=view.overall_status,
        progress=view.progress,
        completion_percentage=view.completion_percentage,
        current_step=view.current_step,
        total_steps=view.total_steps,
        passed_samples=view.passed_samples,
        failed_samples=view.failed_samples,
        samples_count=len(execution.samples),
        measurements_count=measurements_count or 0,
        exports_count=exports_count or 0,
        generated_at=datetime.now(timezone.utc),
    )
