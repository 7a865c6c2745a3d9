"""Utilities for recording study execution timeline events."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

# purpose: persist an ordered audit trail of execution, sample, measurement and export activity
# inputs: SQLAlchemy session, execution id, event metadata, optional actor id
# outputs: ExecutionEvent rows with per-execution sequential ordering
# status: active


def record_execution_event(
    db: Session,
    execution_id: UUID,
    event_type: str,
    payload: dict[str, Any],
    actor_id: str | None = None,
) -> models.ExecutionEvent:
    """Persist a structured execution event for timeline replay."""

    payload_dict = payload if isinstance(payload, dict) else {}
    latest = (
        db.query(func.max(models.ExecutionEvent.sequence))
        .filter(models.ExecutionEvent.execution_id == execution_id)
        .scalar()
    )
    # pending events in this unit of work are not visible to the query above
    pending = [
        obj.sequence
        for obj in db.new
        if isinstance(obj, models.ExecutionEvent) and obj.execution_id == execution_id
    ]
    next_sequence = max([latest or 0, *pending]) + 1
    event = models.ExecutionEvent(
        execution_id=execution_id,
        event_type=event_type,
        payload=_jsonable(payload_dict),
        actor_id=actor_id,
        sequence=next_sequence,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    return event


def list_execution_events(
    db: Session,
    execution_id: UUID,
    *,
    event_type: str | None = None,
    limit: int = 200,
) -> list[models.ExecutionEvent]:
    query = db.query(models.ExecutionEvent).filter(
        models.ExecutionEvent.execution_id == execution_id
    )
    if event_type:
        query = query.filter(models.ExecutionEvent.event_type.like(f"{event_type}%"))
    return query.order_by(models.ExecutionEvent.sequence.asc()).limit(limit).all()


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
