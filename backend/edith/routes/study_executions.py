"""Study execution tracking API routes."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_operator
from ..database import get_db
from ..errors import InvalidTransition, NotFoundError, StudyExecutionError, ValidationFailed
from ..eventlog import list_execution_events
from ..services import executions, exports, measurements, samples
from ..states import ExecutionStatus

# purpose: expose execution lifecycle, sample tracking, measurement ledger and export job endpoints
# status: active
# depends_on: edith.services.executions, edith.services.samples, edith.services.measurements, edith.services.exports

router = APIRouter(prefix="/api/study-executions", tags=["study-executions"])

T = TypeVar("T")

_STATUS_CODES: list[tuple[type[StudyExecutionError], int]] = [
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
]


def _commit(db: Session, action: Callable[[], T]) -> T:
    try:
        result = action()
        db.commit()
    except StudyExecutionError as exc:
        db.rollback()
        code = next(
            (http for error_cls, http in _STATUS_CODES if isinstance(exc, error_cls)),
            status.HTTP_400_BAD_REQUEST,
        )
        raise HTTPException(status_code=code, detail={"code": exc.code, "message": str(exc)}) from exc
    return result


def _read(action: Callable[[], T]) -> T:
    try:
        return action()
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail={"code": exc.code, "message": str(exc)}
        ) from exc
    except ValidationFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail={"code": exc.code, "message": str(exc)}
        ) from exc


def _execution_view(db: Session, execution_id: UUID) -> schemas.StudyExecutionOut:
    return executions.serialize_execution(executions.get_execution(db, execution_id))


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.StudyExecutionOut)
def create_execution(
    payload: schemas.StudyExecutionCreate,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    execution = _commit(db, lambda: executions.create_execution(db, payload, operator))
    return _execution_view(db, execution.id)


@router.get("", response_model=schemas.StudyExecutionPage)
def list_executions(
    status_filter: list[ExecutionStatus] = Query(default=[], alias="status"),
    operator_id: Optional[str] = None,
    study_id: Optional[str] = None,
    category: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    tags: list[str] = Query(default=[]),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date_from must precede date_to")
    try:
        pagination = schemas.Pagination(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sort options") from exc
    filters = schemas.StudyExecutionFilters(
        status=status_filter,
        operator_id=operator_id,
        study_id=study_id,
        category=category,
        date_from=date_from,
        date_to=date_to,
        tags=tags,
        search=search,
    )
    rows, total = executions.list_executions(db, filters, pagination)
    return executions.build_page(rows, total, pagination)


@router.post("/measurements", status_code=status.HTTP_201_CREATED, response_model=schemas.MeasurementOut)
def add_measurement(
    payload: schemas.MeasurementCreate,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    if payload.operator is None:
        payload = payload.model_copy(update={"operator": operator.display_name})
    measurement = _commit(db, lambda: measurements.add_measurement(db, payload))
    db.refresh(measurement)
    return measurement


@router.get("/samples/{sample_id}/measurements", response_model=list[schemas.MeasurementOut])
def list_sample_measurements(
    sample_id: UUID,
    step_id: Optional[str] = None,
    measurement_id: Optional[str] = None,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(
        lambda: measurements.list_measurements(
            db, sample_id=sample_id, step_id=step_id, measurement_id=measurement_id
        )
    )


@router.post("/samples/{sample_id}/start", response_model=schemas.SampleOut)
def start_sample(
    sample_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    sample = _commit(db, lambda: samples.start_sample(db, sample_id, operator))
    db.refresh(sample)
    return sample


@router.post("/samples/{sample_id}/complete", response_model=schemas.SampleOut)
def complete_sample(
    sample_id: UUID,
    payload: schemas.SampleComplete,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    sample = _commit(db, lambda: samples.complete_sample(db, sample_id, payload, actor_id=operator.id))
    db.refresh(sample)
    return sample


@router.post("/samples/{sample_id}/skip", response_model=schemas.SampleOut)
def skip_sample(
    sample_id: UUID,
    payload: schemas.SampleReason,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    sample = _commit(db, lambda: samples.skip_sample(db, sample_id, payload.reason, actor_id=operator.id))
    db.refresh(sample)
    return sample


@router.post("/samples/{sample_id}/fail", response_model=schemas.SampleOut)
def fail_sample(
    sample_id: UUID,
    payload: schemas.SampleReason,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    sample = _commit(db, lambda: samples.fail_sample(db, sample_id, payload.reason, actor_id=operator.id))
    db.refresh(sample)
    return sample


@router.get("/exports/{export_id}", response_model=schemas.ExportOut)
def get_export(
    export_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(lambda: exports.get_export(db, export_id))


@router.post("/exports/{export_id}/status", response_model=schemas.ExportOut)
def update_export_status(
    export_id: UUID,
    payload: schemas.ExportStatusUpdate,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    export = _commit(db, lambda: exports.update_export_status(db, export_id, payload))
    db.refresh(export)
    return export


@router.post("/exports/{export_id}/download", response_model=schemas.ExportOut)
def record_export_download(
    export_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    export = _commit(db, lambda: exports.record_download(db, export_id))
    db.refresh(export)
    return export


@router.get("/{execution_id}", response_model=schemas.StudyExecutionOut)
def get_execution(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(lambda: _execution_view(db, execution_id))


@router.get("/{execution_id}/summary", response_model=schemas.StudyExecutionDigest)
def get_execution_summary(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(lambda: executions.summarize_execution(db, execution_id))


@router.get("/{execution_id}/events", response_model=list[schemas.ExecutionEventOut])
def get_execution_events(
    execution_id: UUID,
    event_type: Optional[str] = None,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _read(lambda: executions.get_execution(db, execution_id))
    return list_execution_events(db, execution_id, event_type=event_type, limit=limit)


@router.post("/{execution_id}/start", response_model=schemas.StudyExecutionOut)
def start_execution(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _commit(db, lambda: executions.start_execution(db, execution_id, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.post("/{execution_id}/pause", response_model=schemas.StudyExecutionOut)
def pause_execution(
    execution_id: UUID,
    payload: Optional[schemas.ExecutionPause] = None,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    notes = payload.notes if payload else None
    _commit(db, lambda: executions.pause_execution(db, execution_id, notes, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.post("/{execution_id}/resume", response_model=schemas.StudyExecutionOut)
def resume_execution(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _commit(db, lambda: executions.resume_execution(db, execution_id, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.post("/{execution_id}/complete", response_model=schemas.StudyExecutionOut)
def complete_execution(
    execution_id: UUID,
    payload: Optional[schemas.ExecutionComplete] = None,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    payload = payload or schemas.ExecutionComplete()
    _commit(
        db,
        lambda: executions.complete_execution(
            db,
            execution_id,
            payload.summary,
            payload.recommendations,
            actor_id=operator.id,
        ),
    )
    return _execution_view(db, execution_id)


@router.post("/{execution_id}/cancel", response_model=schemas.StudyExecutionOut)
def cancel_execution(
    execution_id: UUID,
    payload: schemas.ExecutionReason,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _commit(db, lambda: executions.cancel_execution(db, execution_id, payload.reason, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.post("/{execution_id}/fail", response_model=schemas.StudyExecutionOut)
def fail_execution(
    execution_id: UUID,
    payload: schemas.ExecutionReason,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _commit(db, lambda: executions.fail_execution(db, execution_id, payload.reason, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.put("/{execution_id}/progress", response_model=schemas.StudyExecutionOut)
def refresh_progress(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    _commit(db, lambda: executions.refresh_progress(db, execution_id, actor_id=operator.id))
    return _execution_view(db, execution_id)


@router.get("/{execution_id}/measurements/latest", response_model=list[schemas.MeasurementOut])
def latest_measurements(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(lambda: measurements.latest_measurements(db, execution_id))


@router.post(
    "/{execution_id}/exports",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.ExportOut,
)
def request_export(
    execution_id: UUID,
    payload: schemas.ExportCreate,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    export = _commit(db, lambda: exports.request_export(db, execution_id, payload, operator))
    db.refresh(export)
    return export


@router.get("/{execution_id}/exports", response_model=list[schemas.ExportOut])
def list_exports(
    execution_id: UUID,
    db: Session = Depends(get_db),
    operator: schemas.OperatorContext = Depends(get_current_operator),
):
    return _read(lambda: exports.list_exports(db, execution_id))
