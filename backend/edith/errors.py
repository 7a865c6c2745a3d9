"""Error taxonomy raised by the study execution services."""

from __future__ import annotations


class StudyExecutionError(RuntimeError):
    """Base error for study execution tracking."""

    code = "STUDY_EXECUTION_ERROR"


class ValidationFailed(StudyExecutionError):
    """Raised when a required field is missing or malformed."""

    code = "VALIDATION_FAILED"

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class InvalidTransition(StudyExecutionError):
    """Raised when an action is not legal from the entity's current state."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, entity_id: object, current: str, requested: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid {entity} status transition from {current} to {requested}"
            + (f" ({entity} {entity_id})" if entity_id is not None else "")
        )


class NotFoundError(StudyExecutionError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"
    entity = "resource"

    def __init__(self, entity_id: object):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} {entity_id} not found")


class ExecutionNotFound(NotFoundError):
    code = "EXECUTION_NOT_FOUND"
    entity = "study execution"


class SampleNotFound(NotFoundError):
    code = "SAMPLE_NOT_FOUND"
    entity = "sample"


class ExportNotFound(NotFoundError):
    code = "EXPORT_NOT_FOUND"
    entity = "export"
