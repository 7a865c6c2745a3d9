"""Pydantic schemas for study execution tracking."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..states import (
    ExecutionStatus,
    ExportFormat,
    ExportStatus,
    ExportType,
    ResultStatus,
    SampleQuality,
    SampleStatus,
)


class OperatorContext(BaseModel):
    id: str
    name: Optional[str] = None
    position: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class SampleCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    material: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    estimated_time: Optional[str] = None
    notes: Optional[str] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    location: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class StudyExecutionCreate(BaseModel):
    study_id: Optional[str] = None
    study_name: Optional[str] = None
    protocol_id: Optional[str] = None
    protocol_name: Optional[str] = None
    category: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    operator_position: Optional[str] = None
    environment: dict[str, Any] = Field(default_factory=dict)
    test_conditions: dict[str, Any] = Field(default_factory=dict)
    samples: list[SampleCreate] = Field(default_factory=list)
    estimated_duration: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class ExecutionPause(BaseModel):
    notes: Optional[str] = None


class ExecutionComplete(BaseModel):
    summary: Optional[str] = None
    recommendations: Optional[str] = None


class ExecutionReason(BaseModel):
    reason: Optional[str] = None


class SampleComplete(BaseModel):
    quality: Optional[str] = None
    notes: Optional[str] = None
    anomalies: list[str] = Field(default_factory=list)


class SampleReason(BaseModel):
    reason: Optional[str] = None


class MeasurementCreate(BaseModel):
    sample_id: Optional[UUID] = None
    step_id: Optional[str] = None
    measurement_id: Optional[str] = None
    value: Optional[float] = None
    text_value: Optional[str] = None
    unit: Optional[str] = None
    operator: Optional[str] = None
    equipment: Optional[str] = None
    method: Optional[str] = None
    duration: Optional[str] = None
    confidence: Optional[float] = None
    uncertainty: Optional[float] = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    flags: list[str] = Field(default_factory=list)
    raw_data: Optional[dict[str, Any]] = None
    calculated_data: Optional[dict[str, Any]] = None
    idempotency_key: Optional[str] = None


class MeasurementOut(BaseModel):
    id: UUID
    execution_id: UUID
    sample_id: UUID
    step_id: str
    measurement_id: str
    value: Optional[float] = None
    text_value: Optional[str] = None
    unit: Optional[str] = None
    is_valid: bool
    quality: Optional[str] = None
    confidence: Optional[float] = None
    uncertainty: Optional[float] = None
    operator: str
    equipment: Optional[str] = None
    method: Optional[str] = None
    timestamp: datetime
    duration: Optional[str] = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    flags: list[str] = Field(default_factory=list)
    raw_data: Optional[dict[str, Any]] = None
    calculated_data: Optional[dict[str, Any]] = None
    idempotency_key: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SampleOut(BaseModel):
    id: UUID
    execution_id: UUID
    sample_number: int
    name: str
    description: Optional[str] = None
    material: Optional[str] = None
    status: SampleStatus
    progress: int
    quality: Optional[SampleQuality] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_time: Optional[str] = None
    actual_time: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    anomalies: list[str] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)
    conditions: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SampleDetailOut(SampleOut):
    measurements: list[MeasurementOut] = Field(default_factory=list)


class ExportCreate(BaseModel):
    format: Optional[str] = None
    type: Optional[str] = None
    include_charts: bool = True
    include_samples: bool = True
    include_raw_data: bool = False
    template: Optional[str] = None
    expires_at: Optional[datetime] = None
    meta: dict[str, Any] = Field(default_factory=dict)


class ExportStatusUpdate(BaseModel):
    status: str
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    errors: list[str] = Field(default_factory=list)
    filepath: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)


class ExportOut(BaseModel):
    id: UUID
    execution_id: Optional[UUID] = None
    study_id: Optional[str] = None
    format: ExportFormat
    type: ExportType
    filename: str
    filepath: Optional[str] = None
    size: Optional[int] = None
    include_charts: bool
    include_samples: bool
    include_raw_data: bool
    template: Optional[str] = None
    status: ExportStatus
    progress: int
    requested_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    requested_by_id: str
    requested_by: Optional[str] = None
    download_count: int
    last_download_at: Optional[datetime] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class StudyExecutionSummary(BaseModel):
    id: UUID
    study_id: Optional[str] = None
    study_name: str
    protocol_id: Optional[str] = None
    protocol_name: str
    category: str
    operator_id: str
    operator_name: Optional[str] = None
    operator_position: Optional[str] = None
    status: ExecutionStatus
    progress: float
    current_step: int
    total_steps: int
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_duration: Optional[str] = None
    actual_duration: Optional[str] = None
    environment: dict[str, Any] = Field(default_factory=dict)
    test_conditions: dict[str, Any] = Field(default_factory=dict)
    overall_status: ResultStatus
    summary: Optional[str] = None
    recommendations: Optional[str] = None
    passed_samples: int
    failed_samples: int
    completion_percentage: int
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudyExecutionOut(StudyExecutionSummary):
    samples: list[SampleDetailOut] = Field(default_factory=list)
    measurements: list[MeasurementOut] = Field(default_factory=list)
    exports: list[ExportOut] = Field(default_factory=list)


class StudyExecutionFilters(BaseModel):
    status: list[ExecutionStatus] = Field(default_factory=list)
    operator_id: Optional[str] = None
    study_id: Optional[str] = None
    category: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    tags: list[str] = Field(default_factory=list)
    search: Optional[str] = None


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: Literal[
        "created_at", "started_at", "completed_at", "study_name", "status", "progress"
    ] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class StudyExecutionPage(BaseModel):
    data: list[StudyExecutionSummary]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class StudyExecutionDigest(BaseModel):
    execution_id: UUID
    status: ExecutionStatus
    overall_status: ResultStatus
    progress: float
    completion_percentage: int
    current_step: int
    total_steps: int
    passed_samples: int
    failed_samples: int
    samples_count: int
    measurements_count: int
    exports_count: int
    generated_at: datetime


class ExecutionEventOut(BaseModel):
    id: UUID
    execution_id: UUID
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    actor_id: Optional[str] = None
    sequence: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
