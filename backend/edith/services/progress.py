"""Pure reducers deriving execution progress and pass/fail statistics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from ..states import ResultStatus, SampleQuality, SampleStatus

# purpose: compute execution-level progress from a snapshot of its samples without side effects
# inputs: any iterable of objects exposing ``status`` and ``quality``
# outputs: ProgressSnapshot values consumed by the lifecycle service and serializers
# status: active

_DONE_STATUSES = {SampleStatus.COMPLETED, SampleStatus.SKIPPED}


class SampleLike(Protocol):
    status: SampleStatus
    quality: SampleQuality | None


@dataclass(frozen=True)
class ProgressSnapshot:
    total_samples: int
    progress: float
    completion_percentage: int
    current_step: int
    passed_samples: int
    failed_samples: int
    overall_status: ResultStatus


def recompute(samples: Iterable[SampleLike]) -> ProgressSnapshot:
    """Return progress, step and pass/fail counts for a sample collection."""

    snapshot = list(samples)
    total = len(snapshot)
    done = sum(1 for sample in snapshot if _status(sample) in _DONE_STATUSES)
    passed = sum(
        1
        for sample in snapshot
        if _status(sample) == SampleStatus.COMPLETED and _quality(sample) == SampleQuality.PASS
    )
    failed = sum(
        1
        for sample in snapshot
        if _status(sample) == SampleStatus.COMPLETED and _quality(sample) == SampleQuality.FAIL
    )
    progress = done / total * 100 if total > 0 else 0.0
    return ProgressSnapshot(
        total_samples=total,
        progress=progress,
        completion_percentage=round_half_up(progress),
        current_step=done,
        passed_samples=passed,
        failed_samples=failed,
        overall_status=overall_status(snapshot),
    )


def overall_status(samples: Iterable[SampleLike]) -> ResultStatus:
    """Classify completed samples into PENDING, PASSED, FAILED or PARTIAL."""

    completed = [sample for sample in samples if _status(sample) == SampleStatus.COMPLETED]
    if not completed:
        return ResultStatus.PENDING
    passed = sum(1 for sample in completed if _quality(sample) == SampleQuality.PASS)
    failed = sum(1 for sample in completed if _quality(sample) == SampleQuality.FAIL)
    if failed == 0:
        return ResultStatus.PASSED
    if passed == 0:
        return ResultStatus.FAILED
    return ResultStatus.PARTIAL


def round_half_up(value: float) -> int:
    """Round to the nearest integer with exact halves going up."""

    return math.floor(value + 0.5)


def format_duration(start: datetime | None, end: datetime | None) -> str | None:
    """Render the elapsed time between two instants as ``"1h 5m"``."""

    if start is None or end is None:
        return None
    minutes = max(0, round_half_up((end - start).total_seconds() / 60))
    hours, remainder = divmod(minutes, 60)
    if hours == 0:
        return f"{remainder}m"
    return f"{hours}h" if remainder == 0 else f"{hours}h {remainder}m"


def _status(sample: SampleLike) -> SampleStatus | None:
    value = sample.status
    return SampleStatus(value) if isinstance(value, str) and value else None


def _quality(sample: SampleLike) -> SampleQuality | None:
    value = sample.quality
    return SampleQuality(value) if isinstance(value, str) and value else None
