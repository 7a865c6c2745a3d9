import pytest

from edith.errors import InvalidTransition
from edith.states import (
    ExecutionStatus,
    ExportStatus,
    SampleStatus,
    execution_transition,
    export_transition,
    sample_transition,
)


def test_execution_transition_table():
    allowed, target = execution_transition("start", ExecutionStatus.NOT_STARTED)
    assert target == ExecutionStatus.IN_PROGRESS
    assert allowed == {ExecutionStatus.NOT_STARTED}

    _, target = execution_transition("complete", ExecutionStatus.PAUSED)
    assert target == ExecutionStatus.COMPLETED
    _, target = execution_transition("cancel", ExecutionStatus.NOT_STARTED)
    assert target == ExecutionStatus.CANCELLED


@pytest.mark.parametrize(
    "action, current",
    [
        ("start", ExecutionStatus.IN_PROGRESS),
        ("pause", ExecutionStatus.PAUSED),
        ("resume", ExecutionStatus.IN_PROGRESS),
        ("complete", ExecutionStatus.COMPLETED),
        ("cancel", ExecutionStatus.FAILED),
        ("fail", ExecutionStatus.NOT_STARTED),
    ],
)
def test_execution_transition_rejects_illegal_source(action, current):
    with pytest.raises(InvalidTransition) as excinfo:
        execution_transition(action, current, entity_id="exec-1")
    assert excinfo.value.current == current.value
    assert "exec-1" in str(excinfo.value)


def test_sample_transitions():
    _, target = sample_transition("skip", SampleStatus.PENDING)
    assert target == SampleStatus.SKIPPED
    _, target = sample_transition("fail", SampleStatus.IN_PROGRESS)
    assert target == SampleStatus.FAILED
    with pytest.raises(InvalidTransition):
        sample_transition("complete", SampleStatus.PENDING)
    with pytest.raises(InvalidTransition):
        sample_transition("start", SampleStatus.COMPLETED)


def test_export_transitions():
    assert ExportStatus.PENDING in export_transition(ExportStatus.PENDING, ExportStatus.IN_PROGRESS)
    with pytest.raises(InvalidTransition):
        export_transition(ExportStatus.PENDING, ExportStatus.COMPLETED)
    with pytest.raises(InvalidTransition):
        export_transition(ExportStatus.COMPLETED, ExportStatus.FAILED)
    with pytest.raises(InvalidTransition):
        export_transition(ExportStatus.IN_PROGRESS, ExportStatus.PENDING)
