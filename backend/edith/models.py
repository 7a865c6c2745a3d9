import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .database import Base
from .states import (
    ExecutionStatus,
    ExportFormat,
    ExportStatus,
    ExportType,
    ResultStatus,
    SampleQuality,
    SampleStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_column(enum_cls, default, **kwargs):
    return Column(
        sa.Enum(
            enum_cls,
            native_enum=False,
            length=32,
            validate_strings=True,
            values_callable=lambda members: [member.value for member in members],
        ),
        default=default,
        nullable=kwargs.pop("nullable", False),
        **kwargs,
    )


class StudyExecution(Base):
    __tablename__ = "study_executions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    study_id = Column(String, nullable=True, index=True)
    study_name = Column(String, nullable=False)
    protocol_id = Column(String, nullable=True)
    protocol_name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    operator_id = Column(String, nullable=False, index=True)
    operator_name = Column(String, nullable=True)
    operator_position = Column(String, nullable=True)
    created_by_id = Column(String, nullable=True)
    status = _status_column(ExecutionStatus, ExecutionStatus.NOT_STARTED, index=True)
    progress = Column(Float, default=0.0, nullable=False)
    current_step = Column(Integer, default=0, nullable=False)
    # total_steps: sample count fixed at creation
    total_steps = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    estimated_duration = Column(String, nullable=True)
    actual_duration = Column(String, nullable=True)
    environment = Column(JSON, default=dict, nullable=False)
    test_conditions = Column(JSON, default=dict, nullable=False)
    overall_status = _status_column(ResultStatus, ResultStatus.PENDING)
    summary = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    passed_samples = Column(Integer, default=0, nullable=False)
    failed_samples = Column(Integer, default=0, nullable=False)
    completion_percentage = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    meta = Column("metadata", JSON, default=dict, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # purpose: aggregate root for one tracked run of a study
    # status: active
    samples = relationship(
        "StudyExecutionSample",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="StudyExecutionSample.sample_number",
    )
    measurements = relationship(
        "StudyMeasurement",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="[StudyMeasurement.timestamp, StudyMeasurement.sequence]",
    )
    exports = relationship(
        "StudyExport",
        back_populates="execution",
        order_by="StudyExport.requested_at.desc()",
        passive_deletes=True,
    )
    events = relationship(
        "ExecutionEvent",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="ExecutionEvent.sequence",
    )


class StudyExecutionSample(Base):
    __tablename__ = "study_execution_samples"
    __table_args__ = (
        UniqueConstraint("execution_id", "sample_number", name="uq_study_execution_samples_number"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("study_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sample_number = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    material = Column(String, nullable=True)
    status = _status_column(SampleStatus, SampleStatus.PENDING)
    progress = Column(Integer, default=0, nullable=False)
    quality = _status_column(SampleQuality, None, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    estimated_time = Column(String, nullable=True)
    actual_time = Column(String, nullable=True)
    operator_id = Column(String, nullable=True)
    operator_name = Column(String, nullable=True)
    anomalies = Column(JSON, default=list, nullable=False)
    properties = Column(JSON, default=dict, nullable=False)
    conditions = Column(JSON, default=dict, nullable=False)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    location = Column(String, nullable=True)
    batch_number = Column(String, nullable=True)
    lot_number = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    execution = relationship("StudyExecution", back_populates="samples")
    measurements = relationship(
        "StudyMeasurement",
        back_populates="sample",
        order_by="[StudyMeasurement.timestamp, StudyMeasurement.sequence]",
    )


class StudyMeasurement(Base):
    __tablename__ = "study_measurements"
    __table_args__ = (
        UniqueConstraint("sample_id", "idempotency_key", name="uq_study_measurements_idempotency"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # execution_id: denormalised from the owning sample for ledger queries
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("study_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sample_id = Column(
        UUID(as_uuid=True),
        ForeignKey("study_execution_samples.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id = Column(String, nullable=False)
    measurement_id = Column(String, nullable=False)
    value = Column(Float, nullable=True)
    text_value = Column(Text, nullable=True)
    unit = Column(String, nullable=True)
    is_valid = Column(Boolean, default=True, nullable=False)
    quality = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    uncertainty = Column(Float, nullable=True)
    operator = Column(String, nullable=False)
    equipment = Column(String, nullable=True)
    method = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    duration = Column(String, nullable=True)
    conditions = Column(JSON, default=dict, nullable=False)
    notes = Column(Text, nullable=True)
    flags = Column(JSON, default=list, nullable=False)
    raw_data = Column(JSON, nullable=True)
    calculated_data = Column(JSON, nullable=True)
    idempotency_key = Column(String, nullable=True)
    # sequence: per-execution append order, breaks timestamp ties
    sequence = Column(Integer, nullable=False, default=0)

    # purpose: immutable ledger row; never updated once written
    # status: active
    execution = relationship("StudyExecution", back_populates="measurements")
    sample = relationship("StudyExecutionSample", back_populates="measurements")


class StudyExport(Base):
    __tablename__ = "study_exports"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("study_executions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    study_id = Column(String, nullable=True)
    format = _status_column(ExportFormat, None)
    type = _status_column(ExportType, None)
    filename = Column(String, nullable=False)
    filepath = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    include_charts = Column(Boolean, default=True, nullable=False)
    include_samples = Column(Boolean, default=True, nullable=False)
    include_raw_data = Column(Boolean, default=False, nullable=False)
    template = Column(String, nullable=True)
    status = _status_column(ExportStatus, ExportStatus.PENDING, index=True)
    progress = Column(Integer, default=0, nullable=False)
    requested_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    requested_by_id = Column(String, nullable=False)
    requested_by = Column(String, nullable=True)
    download_count = Column(Integer, default=0, nullable=False)
    last_download_at = Column(DateTime, nullable=True)
    meta = Column("metadata", JSON, default=dict, nullable=False)
    errors = Column(JSON, default=list, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # purpose: export job referencing, never locking, its source execution
    # status: active
    execution = relationship("StudyExecution", back_populates="exports")


class ExecutionEvent(Base):
    __tablename__ = "study_execution_events"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("study_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String, nullable=False)
    payload = Column(JSON, default=dict, nullable=False)
    actor_id = Column(String, nullable=True)
    sequence = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    execution = relationship("StudyExecution", back_populates="events")


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from sqlite."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
