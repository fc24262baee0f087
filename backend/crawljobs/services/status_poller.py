"""
Status polling for one job handle
Runs a recurring timer on the event loop and never lets two status queries overlap
"""
import asyncio
from typing import Any, Callable, Optional
import logging

from crawljobs.core.config import settings
from crawljobs.core.errors import CrawlerApiError, JobFailedError
from crawljobs.models.jobs import ClientJobState, JobHandle, JobStatusSnapshot, Lifecycle
from crawljobs.services.crawler_api import CrawlerBackend
from crawljobs.services.failure_governor import FailureGovernor
from crawljobs.services.job_state_machine import JobStateMachine
from crawljobs.services.progress_recorder import ProgressRecorder

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[ClientJobState], Any]
ErrorCallback = Callable[[Exception], Any]


class StatusPoller:
    """
    Owns the timer and the ClientJobState of one handle.

    Each tick issues a status query unless the previous one is still in flight,
    in which case the tick is skipped (not queued). A terminal state stops the
    timer for good and fires exactly one of on_complete / on_error.
    """

    def __init__(
        self,
        api: CrawlerBackend,
        state: ClientJobState,
        *,
        interval: Optional[float] = None,
        pending_interval: Optional[float] = None,
        max_backoff: Optional[float] = None,
        machine: Optional[JobStateMachine] = None,
        recorder: Optional[ProgressRecorder] = None,
        governor: Optional[FailureGovernor] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        if state.handle is None:
            raise ValueError("Cannot poll a job without a handle")

        self.state = state
        self._api = api
        self._interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self._pending_interval = (
            pending_interval if pending_interval is not None else settings.PENDING_POLL_INTERVAL_SECONDS
        )
        self._max_backoff = max_backoff if max_backoff is not None else settings.MAX_BACKOFF_SECONDS
        self._machine = machine or JobStateMachine()
        self._recorder = recorder or ProgressRecorder()
        self._governor = governor or FailureGovernor(machine=self._machine)
        self._on_complete = on_complete
        self._on_error = on_error

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.Handle] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._started = False
        self._closed = False
        self._finished = asyncio.Event()

    @property
    def handle(self) -> JobHandle:
        return self.state.handle

    @property
    def is_running(self) -> bool:
        """True while a timer is armed"""
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Arm the timer; the first query goes out on the next loop iteration"""
        if self._started or self._closed:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        logger.info(
            f"Polling {self.handle.kind.value} job {self.handle.job_id} every {self._interval}s"
        )
        self._timer = self._loop.call_soon(self._tick)

    def stop(self) -> None:
        """Clear the timer and the in-flight guard. Safe to call any number of times."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        self._in_flight = False
        if not self._closed:
            self._closed = True
            logger.debug(f"Stopped polling job {self.handle.job_id}")
        self._finished.set()

    async def wait(self, timeout: Optional[float] = None) -> ClientJobState:
        """Wait until polling stops (terminal state or explicit stop)"""
        await asyncio.wait_for(self._finished.wait(), timeout)
        return self.state

    def next_delay(self) -> float:
        base = self._interval
        if self._pending_interval is not None and (self.state.backend_status or "").upper() == "PENDING":
            base = self._pending_interval
        backoff = min(self._max_backoff, self._interval * max(0, self.state.consecutive_error_count - 1))
        return base + backoff

    async def poll_once(self) -> bool:
        """
        Issue one status query unless one is already in flight.
        Returns False when the query was skipped.
        """
        if self._closed or self._in_flight:
            return False
        if not self.state.is_active:
            self.stop()
            return False

        handle = self.handle
        self._in_flight = True
        try:
            snapshot = await self._api.get_job_status(handle.kind, handle.job_id)
        except Exception as e:
            if not self._closed:
                self._on_query_failed(e)
        else:
            if not self._closed:
                self._on_snapshot(snapshot)
        finally:
            self._in_flight = False
        return True

    def _tick(self) -> None:
        self._timer = None
        if self._closed:
            return
        if not self.state.is_active:
            self.stop()
            return

        if self._in_flight:
            logger.debug(f"Status query for job {self.handle.job_id} still in flight, skipping tick")
        else:
            self._task = self._loop.create_task(self.poll_once())

        self._timer = self._loop.call_later(self.next_delay(), self._tick)

    def _on_snapshot(self, snapshot: Optional[JobStatusSnapshot]) -> None:
        state = self._machine.apply(self.state, snapshot)
        if snapshot is not None:
            state = state.model_copy(update={"history": self._recorder.record(state.history, snapshot)})
            state = self._governor.on_success(state)
        self.state = state

        if state.is_terminal:
            self._finish()

    def _on_query_failed(self, error: Exception) -> None:
        if isinstance(error, CrawlerApiError) and error.is_definitive:
            # Retrying cannot change a 400/409/503 answer
            logger.error(f"Backend rejected status query for job {self.handle.job_id}: {error}")
            self.state = self._machine.fail(self.state, error.message, error.error_code)
        else:
            self.state = self._governor.on_failure(self.state, error)

        if self.state.is_terminal:
            self._finish()

    def _finish(self) -> None:
        self.stop()
        state = self.state

        if state.lifecycle == Lifecycle.COMPLETED:
            snapshot = state.latest_snapshot
            logger.info(
                f"Job {self.handle.job_id} completed: "
                f"{snapshot.success_count} succeeded, {snapshot.fail_count} failed"
            )
            self._notify(self._on_complete, state)
            return

        logger.error(f"Job {self.handle.job_id} failed: {state.error_message}")
        error = JobFailedError(
            state.error_message,
            state.error_code,
            job_id=self.handle.job_id,
            checkpoint=state.last_checkpoint_id,
        )
        self._notify(self._on_error, error)

    def _notify(self, callback: Optional[Callable[[Any], Any]], payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            logger.error(f"Callback for job {self.handle.job_id} raised: {e}", exc_info=True)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
