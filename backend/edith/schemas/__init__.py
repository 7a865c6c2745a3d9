"""Pydantic schemas consolidating study execution API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from .study_execution import (
    ExecutionComplete,
    ExecutionEventOut,
    ExecutionPause,
    ExecutionReason,
    ExportCreate,
    ExportOut,
    ExportStatusUpdate,
    MeasurementCreate,
    MeasurementOut,
    OperatorContext,
    Pagination,
    SampleComplete,
    SampleCreate,
    SampleDetailOut,
    SampleOut,
    SampleReason,
    StudyExecutionCreate,
    StudyExecutionDigest,
    StudyExecutionFilters,
    StudyExecutionOut,
    StudyExecutionPage,
    StudyExecutionSummary,
)

__all__ = [
    "ExecutionComplete",
    "ExecutionEventOut",
    "ExecutionPause",
    "ExecutionReason",
    "ExportCreate",
    "ExportOut",
    "ExportStatusUpdate",
    "MeasurementCreate",
    "MeasurementOut",
    "OperatorContext",
    "Pagination",
    "SampleComplete",
    "SampleCreate",
    "SampleDetailOut",
    "SampleOut",
    "SampleReason",
    "StudyExecutionCreate",
    "StudyExecutionDigest",
    "StudyExecutionFilters",
    "StudyExecutionOut",
    "StudyExecutionPage",
    "StudyExecutionSummary",
]
