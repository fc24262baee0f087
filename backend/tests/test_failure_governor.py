"""
Tests for FailureGovernor
Validates the consecutive status query failure threshold
"""
import pytest

from crawljobs.core.errors import ErrorCode
from crawljobs.models.jobs import Lifecycle
from crawljobs.services.failure_governor import FailureGovernor
from fakes import running_state


class TestFailureGovernor:
    """Test consecutive failure accounting"""

    def setup_method(self):
        self.governor = FailureGovernor(threshold=5)
        self.state = running_state(job_id="job-7")

    def test_failures_below_threshold_keep_running(self):
        """Test that four failures only bump the counter"""
        state = self.state
        for _ in range(4):
            state = self.governor.on_failure(state, ConnectionError("connection reset"))

        assert state.lifecycle == Lifecycle.RUNNING
        assert state.consecutive_error_count == 4
        assert state.error_message is None

    def test_fifth_failure_is_terminal(self):
        """Test that reaching the threshold fails the job with the last error"""
        state = self.state
        for i in range(5):
            state = self.governor.on_failure(state, ConnectionError(f"error {i}"))

        assert state.lifecycle == Lifecycle.FAILED
        assert state.error_code == ErrorCode.STATUS_POLL_FAILED.value
        assert "5 consecutive times" in state.error_message
        assert "error 4" in state.error_message

    def test_success_resets_counter(self):
        """Test that a successful query resets the count"""
        state = self.governor.on_failure(self.state, TimeoutError("slow"))
        state = self.governor.on_failure(state, TimeoutError("slow"))
        state = self.governor.on_success(state)

        assert state.consecutive_error_count == 0

    def test_success_without_failures_returns_same_state(self):
        """Test that on_success is a no-op when there is nothing to reset"""
        assert self.governor.on_success(self.state) is self.state

    def test_original_state_untouched(self):
        """Test that on_failure returns a copy"""
        self.governor.on_failure(self.state, RuntimeError("boom"))
        assert self.state.consecutive_error_count == 0

    def test_custom_threshold(self):
        """Test that a threshold of 1 fails on the first error"""
        governor = FailureGovernor(threshold=1)
        state = governor.on_failure(self.state, RuntimeError("boom"))

        assert state.lifecycle == Lifecycle.FAILED
        assert governor.exhausted(state)

    def test_invalid_threshold(self):
        """Test that a threshold below 1 is rejected"""
        with pytest.raises(ValueError):
            FailureGovernor(threshold=0)
