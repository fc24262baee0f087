"""
Lifecycle transitions for a tracked crawl job
"""
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Union
import logging

from crawljobs.core.errors import ErrorCode
from crawljobs.models.jobs import (
    ClientJobState,
    JobHandle,
    JobStatus,
    JobStatusSnapshot,
    Lifecycle,
)

logger = logging.getLogger(__name__)


_ALLOWED_TRANSITIONS: Dict[Lifecycle, FrozenSet[Lifecycle]] = {
    Lifecycle.IDLE: frozenset({Lifecycle.LAUNCHING}),
    Lifecycle.LAUNCHING: frozenset({Lifecycle.RUNNING, Lifecycle.FAILED}),
    Lifecycle.RUNNING: frozenset({Lifecycle.RUNNING, Lifecycle.COMPLETED, Lifecycle.FAILED}),
    Lifecycle.COMPLETED: frozenset(),
    Lifecycle.FAILED: frozenset(),
}


def checkpoint_message(message: Optional[str], checkpoint: Optional[Union[int, str]]) -> str:
    """Failure message with the resume position appended when the backend reported one"""
    base = message or "job failed"
    if checkpoint is None:
        return base
    return f"{base} (last processed position: {checkpoint})"


class JobStateMachine:
    """
    Pure transition functions over ClientJobState.

    Every method returns a new state; the state passed in is never modified.
    """

    def begin_launch(self, state: ClientJobState) -> ClientJobState:
        return self._transition(state, Lifecycle.LAUNCHING, error_message=None, error_code=None)

    def mark_running(self, state: ClientJobState, handle: JobHandle,
                     snapshot: Optional[JobStatusSnapshot] = None) -> ClientJobState:
        update = {"handle": handle, "error_message": None, "error_code": None}
        if snapshot is not None:
            update["latest_snapshot"] = snapshot
            update["backend_status"] = snapshot.status
        return self._transition(state, Lifecycle.RUNNING, **update)

    def fail(self, state: ClientJobState, message: str,
             code: Optional[Union[ErrorCode, str]] = None) -> ClientJobState:
        return self._transition(
            state,
            Lifecycle.FAILED,
            error_message=message,
            error_code=code.value if isinstance(code, ErrorCode) else code,
        )

    def apply(self, state: ClientJobState, snapshot: Optional[JobStatusSnapshot]) -> ClientJobState:
        """Apply one status query result"""
        if state.lifecycle == Lifecycle.LAUNCHING:
            state = self._transition(state, Lifecycle.RUNNING)

        if snapshot is None:
            # Record expired after the retention window, or the id never existed
            return self.fail(state, f"job not found (jobId: {state.job_id})", ErrorCode.JOB_NOT_FOUND)

        observed = {"latest_snapshot": snapshot, "backend_status": snapshot.status}
        status = snapshot.job_status

        if status == JobStatus.COMPLETED:
            return self._transition(state, Lifecycle.COMPLETED, **observed)

        if status == JobStatus.FAILED:
            return self._transition(
                state,
                Lifecycle.FAILED,
                error_message=checkpoint_message(snapshot.error_message, snapshot.last_checkpoint_id),
                error_code=snapshot.error_code or ErrorCode.JOB_FAILED.value,
                **observed,
            )

        return self._transition(state, Lifecycle.RUNNING, **observed)

    def _transition(self, state: ClientJobState, target: Lifecycle, **changes) -> ClientJobState:
        if target not in _ALLOWED_TRANSITIONS[state.lifecycle]:
            raise ValueError(f"Invalid transition {state.lifecycle.value} -> {target.value}")
        if target != state.lifecycle:
            logger.debug(f"Job {state.job_id or state.kind.value}: {state.lifecycle.value} -> {target.value}")
        return state.model_copy(update={**changes, "lifecycle": target, "updated_at": datetime.now()})
