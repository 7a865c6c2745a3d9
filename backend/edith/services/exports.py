"""Export job coordination for study execution reports."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import InvalidTransition, ValidationFailed
from ..eventlog import record_execution_event
from ..repository import compare_and_set_status, load_execution, load_export
from ..states import (
    ExportFormat,
    ExportStatus,
    ExportType,
    export_transition,
)

# purpose: persist export job requests and expose their lifecycle to the rendering collaborator
# inputs: execution identifiers, format/type options, status reports from renderers
# outputs: StudyExport rows; the execution itself is referenced, never locked
# status: active

RETENTION_DAYS = int(os.getenv("STUDY_EXPORT_RETENTION_DAYS", "7"))

_OPEN_STATUSES = [ExportStatus.PENDING, ExportStatus.IN_PROGRESS]


def export_filename(export_format: ExportFormat, export_type: ExportType, requested_at: datetime) -> str:
    """Return ``edith-<type-kebab>-<yyyy-mm-dd>.<format>`` for a request date."""

    type_slug = export_type.value.lower().replace("_", "-")
    return f"edith-{type_slug}-{requested_at.strftime('%Y-%m-%d')}.{export_format.value.lower()}"


def _coerce(enum_cls, raw: str | None, field: str):
    if raw is None or not str(raw).strip():
        raise ValidationFailed(field)
    try:
        return enum_cls(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationFailed(
            field, f"{field} must be one of {', '.join(member.value for member in enum_cls)}"
        ) from exc


def request_export(
    db: Session,
    execution_id: UUID,
    payload: schemas.ExportCreate,
    requested_by: schemas.OperatorContext,
) -> models.StudyExport:
    """Queue an export job against the execution's current snapshot.

    Several jobs may target the same execution concurrently.
    """

    export_format = _coerce(ExportFormat, payload.format, "format")
    export_type = _coerce(ExportType, payload.type, "type")
    execution = load_execution(db, execution_id)
    now = datetime.now(timezone.utc)
    expires_at = payload.expires_at or now + timedelta(days=RETENTION_DAYS)
    if models.as_utc(expires_at) <= now:
        raise ValidationFailed("expires_at", "expires_at must be in the future")

    export = models.StudyExport(
        execution_id=execution.id,
        study_id=execution.study_id,
        format=export_format,
        type=export_type,
        filename=export_filename(export_format, export_type, now),
        include_charts=payload.include_charts,
        include_samples=payload.include_samples,
        include_raw_data=payload.include_raw_data,
        template=payload.template,
        status=ExportStatus.PENDING,
        progress=0,
        requested_at=now,
        expires_at=expires_at,
        requested_by_id=requested_by.id,
        requested_by=requested_by.display_name,
        meta=payload.meta,
        errors=[],
        updated_at=now,
    )
    db.add(export)
    db.flush()
    record_execution_event(
        db,
        execution.id,
        "export.requested",
        {
            "export_id": export.id,
            "format": export_format,
            "type": export_type,
            "filename": export.filename,
            "execution_status": execution.status,
        },
        actor_id=requested_by.id,
    )
    return export


def update_export_status(
    db: Session,
    export_id: UUID,
    payload: schemas.ExportStatusUpdate,
) -> models.StudyExport:
    """Record a status report from the rendering collaborator."""

    target = _coerce(ExportStatus, payload.status, "status")
    export = load_export(db, export_id)
    allowed = export_transition(export.status, target, entity_id=export.id)
    now = datetime.now(timezone.utc)
    expires_at = models.as_utc(export.expires_at)
    overdue = expires_at is not None and expires_at <= now
    if target == ExportStatus.EXPIRED and not overdue:
        raise InvalidTransition("export", export.id, export.status.value, target.value)
    if overdue and target != ExportStatus.EXPIRED:
        raise InvalidTransition("export", export.id, f"{export.status.value} (expired)", target.value)

    values: dict[str, Any] = {"status": target, "updated_at": now}
    if payload.progress is not None:
        values["progress"] = payload.progress
    if target == ExportStatus.IN_PROGRESS and export.started_at is None:
        values["started_at"] = now
    if target == ExportStatus.COMPLETED:
        values["progress"] = 100
        values["completed_at"] = now
    if target == ExportStatus.FAILED:
        values["completed_at"] = now
    if payload.filepath is not None:
        values["filepath"] = payload.filepath
    if payload.size is not None:
        values["size"] = payload.size
    if payload.errors:
        values["errors"] = [*(export.errors or []), *payload.errors]

    previous = export.status
    export = compare_and_set_status(db, models.StudyExport, export.id, allowed, values)
    if export.execution_id is not None:
        record_execution_event(
            db,
            export.execution_id,
            "export.status",
            {"export_id": export.id, "from": previous, "to": target, "progress": export.progress},
        )
    return export


def expire_stale_exports(db: Session, *, now: datetime | None = None) -> list[models.StudyExport]:
    """Move open export jobs past their deadline to EXPIRED."""

    now = now or datetime.now(timezone.utc)
    candidates = (
        db.query(models.StudyExport)
        .filter(
            models.StudyExport.status.in_(_OPEN_STATUSES),
            models.StudyExport.expires_at.isnot(None),
        )
        .all()
    )
    expired: list[models.StudyExport] = []
    for export in candidates:
        if models.as_utc(export.expires_at) > now:
            continue
        previous = export.status
        try:
            export = compare_and_set_status(
                db,
                models.StudyExport,
                export.id,
                [previous],
                {"status": ExportStatus.EXPIRED, "updated_at": now},
            )
        except InvalidTransition:
            # renderer finished the job between the scan and the write
            continue
        if export.execution_id is not None:
            record_execution_event(
                db,
                export.execution_id,
                "export.status",
                {"export_id": export.id, "from": previous, "to": ExportStatus.EXPIRED},
            )
        expired.append(export)
    return expired


def get_export(db: Session, export_id: UUID) -> models.StudyExport:
    return load_export(db, export_id)


def list_exports(db: Session, execution_id: UUID) -> list[models.StudyExport]:
    load_execution(db, execution_id)
    return (
        db.query(models.StudyExport)
        .filter(models.StudyExport.execution_id == execution_id)
        .order_by(models.StudyExport.requested_at.desc())
        .all()
    )


def record_download(db: Session, export_id: UUID) -> models.StudyExport:
    """Count a download of a finished export."""

    export = load_export(db, export_id)
    if export.status != ExportStatus.COMPLETED:
        raise InvalidTransition("export", export.id, export.status.value, "download")
    now = datetime.now(timezone.utc)
    return compare_and_set_status(
        db,
        models.StudyExport,
        export.id,
        [ExportStatus.COMPLETED],
        {
            "download_count": models.StudyExport.download_count + 1,
            "last_download_at": now,
            "updated_at": now,
        },
    )
