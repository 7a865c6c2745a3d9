from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from edith.services.progress import format_duration, overall_status, recompute
from edith.states import ResultStatus, SampleQuality, SampleStatus


@dataclass
class FakeSample:
    status: SampleStatus
    quality: SampleQuality | None = None


def test_recompute_counts_completed_and_skipped_as_done():
    samples = [
        FakeSample(SampleStatus.COMPLETED, SampleQuality.PASS),
        FakeSample(SampleStatus.SKIPPED),
        FakeSample(SampleStatus.IN_PROGRESS),
        FakeSample(SampleStatus.PENDING),
    ]
    snapshot = recompute(samples)
    assert snapshot.total_samples == 4
    assert snapshot.progress == 50.0
    assert snapshot.completion_percentage == 50
    assert snapshot.current_step == 2
    assert snapshot.passed_samples == 1
    assert snapshot.failed_samples == 0
    assert snapshot.overall_status == ResultStatus.PASSED


def test_recompute_failed_sample_is_not_done():
    snapshot = recompute([FakeSample(SampleStatus.FAILED), FakeSample(SampleStatus.PENDING)])
    assert snapshot.progress == 0.0
    assert snapshot.current_step == 0
    assert snapshot.overall_status == ResultStatus.PENDING


def test_recompute_empty_collection():
    snapshot = recompute([])
    assert snapshot.progress == 0.0
    assert snapshot.current_step == 0
    assert snapshot.overall_status == ResultStatus.PENDING


def test_recompute_rounds_completion_percentage():
    samples = [FakeSample(SampleStatus.COMPLETED, SampleQuality.PASS)] + [
        FakeSample(SampleStatus.PENDING) for _ in range(2)
    ]
    snapshot = recompute(samples)
    assert snapshot.progress == pytest.approx(100 / 3)
    assert snapshot.completion_percentage == 33


@pytest.mark.parametrize(
    "qualities, expected",
    [
        ([], ResultStatus.PENDING),
        ([SampleQuality.PASS, SampleQuality.PASS], ResultStatus.PASSED),
        ([SampleQuality.PASS, SampleQuality.WARNING], ResultStatus.PASSED),
        ([SampleQuality.WARNING], ResultStatus.PASSED),
        ([SampleQuality.FAIL, SampleQuality.FAIL], ResultStatus.FAILED),
        ([SampleQuality.FAIL, SampleQuality.WARNING], ResultStatus.FAILED),
        ([SampleQuality.PASS, SampleQuality.FAIL], ResultStatus.PARTIAL),
    ],
)
def test_overall_status_classification(qualities, expected):
    samples = [FakeSample(SampleStatus.COMPLETED, quality) for quality in qualities]
    samples.append(FakeSample(SampleStatus.PENDING))
    assert overall_status(samples) == expected


def test_overall_status_ignores_skipped_samples():
    samples = [FakeSample(SampleStatus.SKIPPED), FakeSample(SampleStatus.SKIPPED)]
    assert overall_status(samples) == ResultStatus.PENDING


def test_recompute_accepts_plain_string_values():
    snapshot = recompute([FakeSample("COMPLETED", "fail"), FakeSample("COMPLETED", "pass")])
    assert snapshot.passed_samples == 1
    assert snapshot.failed_samples == 1
    assert snapshot.overall_status == ResultStatus.PARTIAL


def test_format_duration():
    start = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    assert format_duration(start, start + timedelta(minutes=42)) == "42m"
    assert format_duration(start, start + timedelta(hours=2)) == "2h"
    assert format_duration(start, start + timedelta(hours=1, minutes=5)) == "1h 5m"
    assert format_duration(None, start) is None
    assert format_duration(start, start - timedelta(minutes=3)) == "0m"


def test_progress_never_decreases_as_samples_finish():
    samples = [FakeSample(SampleStatus.PENDING) for _ in range(4)]
    observed = [recompute(samples).progress]
    for index, final in enumerate(
        [SampleStatus.COMPLETED, SampleStatus.SKIPPED, SampleStatus.COMPLETED, SampleStatus.SKIPPED]
    ):
        samples[index] = FakeSample(SampleStatus.IN_PROGRESS)
        observed.append(recompute(samples).progress)
        samples[index] = FakeSample(final, SampleQuality.PASS if final == SampleStatus.COMPLETED else None)
        observed.append(recompute(samples).progress)
    assert observed == sorted(observed)
    assert observed[-1] == 100.0


@pytest.mark.parametrize("done, expected", [(1, 13), (3, 38), (5, 63), (7, 88)])
def test_completion_percentage_rounds_halves_up(done, expected):
    samples = [FakeSample(SampleStatus.COMPLETED, SampleQuality.PASS) for _ in range(done)]
    samples += [FakeSample(SampleStatus.PENDING) for _ in range(8 - done)]
    snapshot = recompute(samples)
    assert snapshot.progress == done * 12.5
    assert snapshot.completion_percentage == expected


def test_format_duration_rounds_half_minutes_up():
    start = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    assert format_duration(start, start + timedelta(seconds=150)) == "3m"
    assert format_duration(start, start + timedelta(seconds=30)) == "1m"
    assert format_duration(start, start + timedelta(seconds=29)) == "0m"
    assert format_duration(start, start + timedelta(minutes=89, seconds=30)) == "1h 30m"
