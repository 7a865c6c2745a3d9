"""Persistence primitives shared by the study execution services."""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session, selectinload

from . import models
from .errors import ExecutionNotFound, ExportNotFound, InvalidTransition, SampleNotFound

# purpose: isolate compare-and-swap status writes and snapshot loaders from service logic
# inputs: SQLAlchemy session, entity identifiers, expected prior statuses
# outputs: refreshed ORM rows or InvalidTransition when a concurrent writer won
# status: active

_ENTITY_LABELS = {
    models.StudyExecution: "execution",
    models.StudyExecutionSample: "sample",
    models.StudyExport: "export",
}


def compare_and_set_status(
    db: Session,
    model: type,
    entity_id: UUID,
    expected: Iterable[Any],
    values: dict[str, Any],
):
    """Apply ``values`` only if the row still holds one of ``expected`` statuses.

    The write is a single conditional UPDATE so two callers racing on the same
    entity cannot both succeed. Returns the refreshed row.
    """

    expected_statuses = list(expected)
    result = db.execute(
        sa.update(model)
        .where(model.id == entity_id, model.status.in_(expected_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    row = db.get(model, entity_id, populate_existing=True)
    if result.rowcount != 1:
        current = getattr(row.status, "value", row.status) if row is not None else "MISSING"
        requested = values.get("status")
        raise InvalidTransition(
            _ENTITY_LABELS.get(model, model.__name__),
            entity_id,
            current,
            getattr(requested, "value", requested),
        )
    return row


def load_execution(db: Session, execution_id: UUID, *, with_ledger: bool = False) -> models.StudyExecution:
    """Load an execution and its samples in one batch, or raise ExecutionNotFound."""

    options = [selectinload(models.StudyExecution.samples)]
    if with_ledger:
        options.extend(
            [
                selectinload(models.StudyExecution.samples).selectinload(
                    models.StudyExecutionSample.measurements
                ),
                selectinload(models.StudyExecution.measurements),
                selectinload(models.StudyExecution.exports),
            ]
        )
    execution = (
        db.query(models.StudyExecution)
        .options(*options)
        .filter(models.StudyExecution.id == execution_id)
        .populate_existing()
        .one_or_none()
    )
    if execution is None:
        raise ExecutionNotFound(execution_id)
    return execution


def load_sample(db: Session, sample_id: UUID) -> models.StudyExecutionSample:
    sample = db.get(models.StudyExecutionSample, sample_id)
    if sample is None:
        raise SampleNotFound(sample_id)
    return sample


def load_export(db: Session, export_id: UUID) -> models.StudyExport:
    export = db.get(models.StudyExport, export_id)
    if export is None:
        raise ExportNotFound(export_id)
    return export
