"""
Tests for the print job lifecycle and progress arithmetic.
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from invoice_batch.domain.types import (
    JobRunResult,
    PrintJobStatus,
    compute_progress,
)


class TestLifecycle:
    @pytest.mark.parametrize("source,target", [
        (PrintJobStatus.QUEUED, PrintJobStatus.PROCESSING),
        (PrintJobStatus.QUEUED, PrintJobStatus.CANCELLED),
        (PrintJobStatus.PROCESSING, PrintJobStatus.COMPLETED),
        (PrintJobStatus.PROCESSING, PrintJobStatus.FAILED),
        (PrintJobStatus.PROCESSING, PrintJobStatus.CANCELLED),
    ])
    def test_allowed(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize("source", [
        PrintJobStatus.COMPLETED,
        PrintJobStatus.FAILED,
        PrintJobStatus.CANCELLED,
    ])
    def test_terminal_statuses_are_final(self, source):
        assert source.is_terminal
        assert not any(source.can_transition_to(target) for target in PrintJobStatus)

    def test_completed_is_only_reached_through_processing(self):
        assert not PrintJobStatus.QUEUED.can_transition_to(PrintJobStatus.COMPLETED)


class TestProgress:
    @pytest.mark.parametrize("processed,total,expected", [
        (0, 5, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds half up
        (5, 5, 100),
        (7, 5, 100),
        (3, 0, 0),
    ])
    def test_examples(self, processed, total, expected):
        assert compute_progress(processed, total) == expected

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(total=st.integers(min_value=1, max_value=10_000), data=st.data())
    def test_monotonic_and_bounded(self, total, data):
        a = data.draw(st.integers(min_value=0, max_value=total))
        b = data.draw(st.integers(min_value=a, max_value=total))

        assert 0 <= compute_progress(a, total) <= compute_progress(b, total) <= 100


def test_partial_failure_flag():
    result = JobRunResult(job_id=None, status=PrintJobStatus.COMPLETED, total=3, completed=2, failed=1)

    assert result.is_partial_failure
