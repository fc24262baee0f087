"""
Crawl job tracker
One object per logical job slot: start, restart, stop, current state and completion callbacks
"""
from typing import Awaitable, Callable, List, Optional, Union
import logging

from crawljobs.core.errors import CrawlerError
from crawljobs.models.jobs import ClientJobState, JobKind, Lifecycle
from crawljobs.services.crawler_api import CrawlerBackend
from crawljobs.services.job_launcher import JobLauncher, LaunchResult, StartParams
from crawljobs.services.job_state_machine import JobStateMachine
from crawljobs.services.restart_coordinator import RestartCoordinator
from crawljobs.services.status_poller import CompleteCallback, ErrorCallback, StatusPoller

logger = logging.getLogger(__name__)


class CrawlJobTracker:
    """
    Tracks the job of one kind through start, polling and restart.

    `start` and `restart` are no-ops while a job is launching or running. On a
    hard start failure they set the state to FAILED, fire on_error once and raise
    the LaunchError. `stop` must be called when the owner goes away, otherwise
    the poller timer keeps running.
    """

    def __init__(
        self,
        kind: Union[JobKind, str],
        api: CrawlerBackend,
        *,
        poll_interval: Optional[float] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        machine: Optional[JobStateMachine] = None,
    ):
        self.kind = JobKind(kind)
        self._api = api
        self._poll_interval = poll_interval
        self._machine = machine or JobStateMachine()
        self._launcher = JobLauncher(api, machine=self._machine, poller_factory=self._make_poller)
        self._coordinator = RestartCoordinator(self._launcher)

        self._complete_callbacks: List[CompleteCallback] = []
        self._error_callbacks: List[ErrorCallback] = []
        if on_complete is not None:
            self.on_complete(on_complete)
        if on_error is not None:
            self.on_error(on_error)

        self._state = ClientJobState(kind=self.kind)
        self._poller: Optional[StatusPoller] = None
        self._attempt = 0

    @property
    def state(self) -> ClientJobState:
        if self._poller is not None:
            return self._poller.state
        return self._state

    @property
    def is_loading(self) -> bool:
        return self.state.lifecycle == Lifecycle.LAUNCHING

    def on_complete(self, callback: CompleteCallback) -> CompleteCallback:
        self._complete_callbacks.append(callback)
        return callback

    def on_error(self, callback: ErrorCallback) -> ErrorCallback:
        self._error_callbacks.append(callback)
        return callback

    async def start(self, params: Optional[StartParams] = None) -> ClientJobState:
        if self._busy("start"):
            return self.state
        return await self._launch(lambda state: self._launcher.start(self.kind, params, state=state))

    async def restart(self, params: Optional[StartParams] = None) -> ClientJobState:
        """Launch a new job, resuming after the last checkpoint when the previous one failed"""
        if self._busy("restart"):
            return self.state
        prior = self.state
        return await self._launch(
            lambda state: self._coordinator.restart(self.kind, prior, params, state=state)
        )

    def stop(self) -> None:
        """Stop polling. An active job's state is discarded; a finished one is kept for inspection."""
        self._attempt += 1
        state = self.state
        self._drop_poller()
        if state.is_active:
            logger.info(f"Stopped tracking {self.kind.value} job {state.job_id or '(launching)'}")
            self._state = ClientJobState(kind=self.kind)
        else:
            self._state = state

    async def wait(self, timeout: Optional[float] = None) -> ClientJobState:
        """Wait for the current job to stop polling"""
        if self._poller is None:
            return self.state
        return await self._poller.wait(timeout)

    async def _launch(self, launch: Callable[[ClientJobState], Awaitable[LaunchResult]]) -> ClientJobState:
        self._drop_poller()
        self._attempt += 1
        attempt = self._attempt
        self._state = self._machine.begin_launch(ClientJobState(kind=self.kind))

        result = await launch(self._state)

        if attempt != self._attempt:
            # stop() ran while the start call was in flight
            if result.poller is not None:
                result.poller.stop()
            return self.state

        self._state = result.state
        self._poller = result.poller
        if result.error is not None:
            self._emit_error(result.error)
            raise result.error
        return self.state

    def _busy(self, action: str) -> bool:
        state = self.state
        if not state.is_active:
            return False
        logger.info(f"{self.kind.value} job is {state.lifecycle.value}, ignoring {action}")
        return True

    def _drop_poller(self) -> None:
        if self._poller is None:
            return
        self._state = self._poller.state
        self._poller.stop()
        self._poller = None

    def _make_poller(self, state: ClientJobState) -> StatusPoller:
        return StatusPoller(
            self._api,
            state,
            interval=self._poll_interval,
            machine=self._machine,
            on_complete=self._emit_complete,
            on_error=self._emit_error,
        )

    def _emit_complete(self, state: ClientJobState) -> None:
        for callback in list(self._complete_callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"on_complete callback for {self.kind.value} raised: {e}", exc_info=True)

    def _emit_error(self, error: CrawlerError) -> None:
        for callback in list(self._error_callbacks):
            try:
                callback(error)
            except Exception as e:
                logger.error(f"on_error callback for {self.kind.value} raised: {e}", exc_info=True)

