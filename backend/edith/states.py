"""Closed status vocabularies and transition tables for study executions."""

from __future__ import annotations

import enum

from .errors import InvalidTransition

# purpose: single source of truth for execution, sample and export state machines
# outputs: enums persisted as strings plus lookup tables consumed by the services
# status: active


class ExecutionStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class SampleStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class SampleQuality(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class ResultStatus(str, enum.Enum):
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


class ExportFormat(str, enum.Enum):
    PDF = "PDF"
    EXCEL = "EXCEL"
    CSV = "CSV"
    JSON = "JSON"


class ExportType(str, enum.Enum):
    COMPLETE_REPORT = "COMPLETE_REPORT"
    SAMPLE_RESULTS = "SAMPLE_RESULTS"
    MEASUREMENTS_ONLY = "MEASUREMENTS_ONLY"
    SUMMARY_ONLY = "SUMMARY_ONLY"
    TEMPLATE = "TEMPLATE"


class ExportStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)
TERMINAL_SAMPLE_STATUSES = frozenset(
    {SampleStatus.COMPLETED, SampleStatus.FAILED, SampleStatus.SKIPPED}
)
TERMINAL_EXPORT_STATUSES = frozenset(
    {ExportStatus.COMPLETED, ExportStatus.FAILED, ExportStatus.EXPIRED}
)

_OPEN_EXECUTION = frozenset(ExecutionStatus) - TERMINAL_EXECUTION_STATUSES

# action -> statuses the action may be applied from
EXECUTION_TRANSITIONS: dict[str, tuple[frozenset[ExecutionStatus], ExecutionStatus]] = {
    "start": (frozenset({ExecutionStatus.NOT_STARTED}), ExecutionStatus.IN_PROGRESS),
    "pause": (frozenset({ExecutionStatus.IN_PROGRESS}), ExecutionStatus.PAUSED),
    "resume": (frozenset({ExecutionStatus.PAUSED}), ExecutionStatus.IN_PROGRESS),
    "complete": (_OPEN_EXECUTION, ExecutionStatus.COMPLETED),
    "cancel": (_OPEN_EXECUTION, ExecutionStatus.CANCELLED),
    "fail": (
        frozenset({ExecutionStatus.IN_PROGRESS, ExecutionStatus.PAUSED}),
        ExecutionStatus.FAILED,
    ),
}

SAMPLE_TRANSITIONS: dict[str, tuple[frozenset[SampleStatus], SampleStatus]] = {
    "start": (frozenset({SampleStatus.PENDING}), SampleStatus.IN_PROGRESS),
    "complete": (frozenset({SampleStatus.IN_PROGRESS}), SampleStatus.COMPLETED),
    "fail": (frozenset({SampleStatus.IN_PROGRESS}), SampleStatus.FAILED),
    "skip": (
        frozenset({SampleStatus.PENDING, SampleStatus.IN_PROGRESS}),
        SampleStatus.SKIPPED,
    ),
}

# target -> statuses a rendering collaborator may report it from
EXPORT_TRANSITIONS: dict[ExportStatus, frozenset[ExportStatus]] = {
    ExportStatus.IN_PROGRESS: frozenset({ExportStatus.PENDING, ExportStatus.IN_PROGRESS}),
    ExportStatus.COMPLETED: frozenset({ExportStatus.IN_PROGRESS}),
    ExportStatus.FAILED: frozenset({ExportStatus.PENDING, ExportStatus.IN_PROGRESS}),
    ExportStatus.EXPIRED: frozenset({ExportStatus.PENDING, ExportStatus.IN_PROGRESS}),
    ExportStatus.PENDING: frozenset(),
}


def execution_transition(
    action: str, current: ExecutionStatus, *, entity_id: object = None
) -> tuple[frozenset[ExecutionStatus], ExecutionStatus]:
    """Return (allowed sources, target) for an execution action or raise."""

    allowed, target = EXECUTION_TRANSITIONS[action]
    if current not in allowed:
        raise InvalidTransition("execution", entity_id, current.value, target.value)
    return allowed, target


def sample_transition(
    action: str, current: SampleStatus, *, entity_id: object = None
) -> tuple[frozenset[SampleStatus], SampleStatus]:
    """Return (allowed sources, target) for a sample action or raise."""

    allowed, target = SAMPLE_TRANSITIONS[action]
    if current not in allowed:
        raise InvalidTransition("sample", entity_id, current.value, target.value)
    return allowed, target


def export_transition(
    current: ExportStatus, target: ExportStatus, *, entity_id: object = None
) -> frozenset[ExportStatus]:
    """Return the statuses an export may move to ``target`` from, or raise."""

    allowed = EXPORT_TRANSITIONS[target]
    if current not in allowed:
        raise InvalidTransition("export", entity_id, current.value, target.value)
    return allowed
