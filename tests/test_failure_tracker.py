"""Unit tests for FailureTracker."""

import pytest

from notification_engine.notifications import FailureTracker


class TestFailureTracker:
    def test_pauses_at_threshold(self, clock):
        tracker = FailureTracker(threshold=3, clock=clock)

        tracker.record_failure("promotion")
        tracker.record_failure("promotion")
        assert tracker.is_paused("promotion") is False

        counter = tracker.record_failure("promotion")
        assert counter.paused is True
        assert counter.paused_at == clock.now
        assert counter.consecutive_failures == 3
        assert tracker.is_paused("promotion") is True

    def test_success_resets_count_but_not_pause(self, clock):
        tracker = FailureTracker(threshold=2, clock=clock)
        tracker.record_failure("promotion")
        tracker.record_success("promotion")
        tracker.record_failure("promotion")
        assert tracker.is_paused("promotion") is False

        tracker.record_failure("promotion")
        tracker.record_success("promotion")
        assert tracker.is_paused("promotion") is True
        assert tracker.snapshot()["promotion"].consecutive_failures == 0

    def test_reset_lifts_pause(self):
        tracker = FailureTracker(threshold=1)
        tracker.record_failure("promotion")

        tracker.reset("promotion")

        assert tracker.is_paused("promotion") is False
        assert "promotion" not in tracker.snapshot()

    def test_types_are_independent(self):
        tracker = FailureTracker(threshold=1)
        tracker.record_failure("promotion")

        assert tracker.is_paused("appointment_reminder") is False

    def test_zero_threshold_never_pauses(self):
        tracker = FailureTracker(threshold=0)
        for _ in range(50):
            tracker.record_failure("promotion")

        assert tracker.is_paused("promotion") is False

    def test_returned_counter_is_a_copy(self):
        tracker = FailureTracker(threshold=5)
        counter = tracker.record_failure("promotion")
        counter.consecutive_failures = 99

        assert tracker.snapshot()["promotion"].consecutive_failures == 1

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            FailureTracker(threshold=-1)
