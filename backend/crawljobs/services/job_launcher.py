"""
Job launching: start call, ambiguous-timeout recovery and poller wiring
"""
from dataclasses import dataclass
from pydantic import ValidationError
from typing import Any, Callable, Mapping, Optional, Union
import logging

from crawljobs.core.errors import CrawlerApiError, ErrorCode, LaunchError
from crawljobs.models.jobs import (
    ClientJobState,
    CollectRangeParams,
    JobHandle,
    JobKind,
    JobStatus,
    JobStatusSnapshot,
    Lifecycle,
)
from crawljobs.services.crawler_api import CrawlerBackend
from crawljobs.services.job_state_machine import JobStateMachine
from crawljobs.services.status_poller import StatusPoller

logger = logging.getLogger(__name__)

StartParams = Union[CollectRangeParams, Mapping[str, Any]]
PollerFactory = Callable[[ClientJobState], StatusPoller]


@dataclass
class LaunchResult:
    """Outcome of a start attempt: a running state with its poller, or a failed state with the error"""
    state: ClientJobState
    poller: Optional[StatusPoller] = None
    error: Optional[LaunchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def handle(self) -> Optional[JobHandle]:
        return self.state.handle if self.ok else None


class JobLauncher:
    """Starts backend jobs and hands each started job to a fresh StatusPoller"""

    def __init__(
        self,
        api: CrawlerBackend,
        *,
        machine: Optional[JobStateMachine] = None,
        poller_factory: Optional[PollerFactory] = None,
    ):
        self._api = api
        self._machine = machine or JobStateMachine()
        self._poller_factory = poller_factory or self._default_poller

    async def start(self, kind: JobKind, params: Optional[StartParams] = None, *,
                    state: Optional[ClientJobState] = None) -> LaunchResult:
        """
        Start a job of the given kind.

        `state` is the caller's LAUNCHING (or IDLE) state for this attempt; a new one
        is created when omitted. Never raises for backend failures: they come back
        as a FAILED state plus a LaunchError.
        """
        if state is None:
            state = ClientJobState(kind=kind)
        if state.lifecycle == Lifecycle.IDLE:
            state = self._machine.begin_launch(state)

        try:
            range_params = self._coerce_params(kind, params)
        except LaunchError as e:
            return self._failed(state, e)
        state = state.model_copy(update={"params": range_params})

        if range_params is not None:
            logger.info(f"Starting {kind.value} job for range {range_params.start}-{range_params.end}")
        else:
            logger.info(f"Starting {kind.value} job")
        try:
            started = await self._api.start_job(kind, range_params)
        except Exception as e:
            recovered = await self._recover(state, e)
            if recovered is not None:
                return recovered
            return self._failed(state, _launch_error(e))

        return self._launched(state, JobHandle(job_id=started.job_id, kind=kind))

    async def _recover(self, state: ClientJobState, error: Exception) -> Optional[LaunchResult]:
        """
        One recovery probe after a start timeout that still carried a job id:
        the backend may have accepted the job before the client gave up waiting.
        """
        if not (isinstance(error, CrawlerApiError) and error.timeout and error.job_id):
            return None

        kind, job_id = state.kind, error.job_id
        logger.warning(f"Start of {kind.value} job timed out but backend reported job {job_id}; probing status")
        try:
            snapshot = await self._api.get_job_status(kind, job_id)
        except Exception as probe_error:
            logger.warning(f"Recovery probe for job {job_id} failed: {probe_error}")
            return None

        if not _shows_progress(snapshot):
            logger.info(f"Job {job_id} shows no sign of running, treating start as failed")
            return None

        logger.info(f"Recovered {kind.value} job {job_id} after start timeout (status {snapshot.status})")
        return self._launched(state, JobHandle(job_id=job_id, kind=kind), snapshot)

    def _launched(self, state: ClientJobState, handle: JobHandle,
                  snapshot: Optional[JobStatusSnapshot] = None) -> LaunchResult:
        state = self._machine.mark_running(state, handle, snapshot)
        poller = self._poller_factory(state)
        poller.start()
        return LaunchResult(state=state, poller=poller)

    def _failed(self, state: ClientJobState, error: LaunchError) -> LaunchResult:
        logger.error(f"Could not start {state.kind.value} job: {error}")
        state = self._machine.fail(state, error.message, error.error_code)
        return LaunchResult(state=state, error=error)

    def _default_poller(self, state: ClientJobState) -> StatusPoller:
        return StatusPoller(self._api, state, machine=self._machine)

    @staticmethod
    def _coerce_params(kind: JobKind, params: Optional[StartParams]) -> Optional[CollectRangeParams]:
        if params is None:
            if kind.requires_range:
                raise LaunchError(f"{kind.value} jobs require start and end parameters", ErrorCode.INVALID_RANGE)
            return None

        if not kind.accepts_range:
            logger.warning(f"Ignoring range parameters for {kind.value} job")
            return None

        if isinstance(params, CollectRangeParams):
            return params
        try:
            return CollectRangeParams.model_validate(dict(params))
        except ValidationError as e:
            reason = e.errors()[0]["msg"] if e.errors() else str(e)
            raise LaunchError(f"Invalid range: {reason}", ErrorCode.INVALID_RANGE) from e


def _shows_progress(snapshot: Optional[JobStatusSnapshot]) -> bool:
    if snapshot is None:
        return False
    return snapshot.last_checkpoint_id is not None or snapshot.job_status == JobStatus.RUNNING


def _launch_error(error: Exception) -> LaunchError:
    if isinstance(error, CrawlerApiError):
        launch_error = LaunchError(
            error.message,
            error.code,
            context={
                "status_code": error.status_code,
                "job_id": error.job_id,
                "server_code": error.context.get("server_code"),
            },
        )
    else:
        launch_error = LaunchError(str(error) or "job start failed", ErrorCode.START_FAILED)
    launch_error.__cause__ = error
    return launch_error
