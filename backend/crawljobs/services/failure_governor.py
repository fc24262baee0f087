"""
Consecutive-failure accounting for status polling
"""
from typing import Optional
import logging

from crawljobs.core.config import settings
from crawljobs.core.errors import ErrorCode
from crawljobs.models.jobs import ClientJobState
from crawljobs.services.job_state_machine import JobStateMachine

logger = logging.getLogger(__name__)


class FailureGovernor:
    """
    Counts back-to-back status query failures.

    Only transport/query exceptions count. A "not found" answer is a terminal
    domain outcome handled by the state machine, not a retryable failure.
    """

    def __init__(self, threshold: Optional[int] = None, machine: Optional[JobStateMachine] = None):
        self._threshold = threshold if threshold is not None else settings.MAX_CONSECUTIVE_ERRORS
        if self._threshold < 1:
            raise ValueError("Failure threshold must be at least 1")
        self._machine = machine or JobStateMachine()

    @property
    def threshold(self) -> int:
        return self._threshold

    def exhausted(self, state: ClientJobState) -> bool:
        return state.consecutive_error_count >= self._threshold

    def on_failure(self, state: ClientJobState, error: BaseException) -> ClientJobState:
        count = state.consecutive_error_count + 1
        state = state.model_copy(update={"consecutive_error_count": count})

        if not self.exhausted(state):
            logger.warning(
                f"Status query failed for job {state.job_id} ({count}/{self._threshold}): {error}"
            )
            return state

        logger.error(f"Giving up on job {state.job_id} after {count} consecutive status query failures")
        return self._machine.fail(
            state,
            f"status query failed {count} consecutive times: {error}",
            ErrorCode.STATUS_POLL_FAILED,
        )

    def on_success(self, state: ClientJobState) -> ClientJobState:
        if state.consecutive_error_count == 0:
            return state
        return state.model_copy(update={"consecutive_error_count": 0})
