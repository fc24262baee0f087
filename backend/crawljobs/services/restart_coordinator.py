"""
Resuming failed jobs from the last checkpoint the backend reported
"""
from typing import Any, Dict, Mapping, Optional, Union
import logging

from crawljobs.models.jobs import ClientJobState, CollectRangeParams, JobKind, Lifecycle
from crawljobs.services.job_launcher import JobLauncher, LaunchResult, StartParams

logger = logging.getLogger(__name__)


class RestartCoordinator:
    """Computes restart parameters and launches a new job; the prior state is left as it was"""

    def __init__(self, launcher: JobLauncher):
        self._launcher = launcher

    def resume_params(self, kind: JobKind, prior: ClientJobState,
                      override: Optional[StartParams] = None) -> Optional[Union[StartParams, Dict[str, int]]]:
        """
        Range for the next attempt.

        A failed range-bounded job with a numeric checkpoint resumes right after it.
        Anything else is relaunched with the same parameters and the backend
        resumes from its own persisted checkpoint.
        """
        unchanged = override if override is not None else prior.params
        checkpoint = prior.last_checkpoint_id

        if not (kind.accepts_range and prior.lifecycle == Lifecycle.FAILED and _is_numeric(checkpoint)):
            return unchanged

        new_start = checkpoint + 1
        new_end = _first_set(
            _end_of(override),
            prior.range_end,
            prior.params.end if prior.params else None,
        )
        if new_end is None:
            if not kind.requires_range:
                return unchanged
            new_end = new_start

        logger.info(f"Resuming {kind.value} job {prior.job_id} from checkpoint {checkpoint}: {new_start}-{new_end}")
        return {"start": new_start, "end": new_end}

    async def restart(self, kind: JobKind, prior: ClientJobState,
                      override: Optional[StartParams] = None, *,
                      state: Optional[ClientJobState] = None) -> LaunchResult:
        params = self.resume_params(kind, prior, override)
        return await self._launcher.start(kind, params, state=state)


def _is_numeric(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _end_of(params: Optional[StartParams]) -> Optional[int]:
    if params is None:
        return None
    if isinstance(params, CollectRangeParams):
        return params.end
    if isinstance(params, Mapping):
        return params.get("end")
    return None


def _first_set(*values: Optional[int]) -> Optional[int]:
    for value in values:
        if value is not None:
            return value
    return None
