"""
Process-wide trackers, one per job kind
"""
from typing import Callable, Dict, Optional, Union
import logging

from crawljobs.core.errors import CrawlerError
from crawljobs.models.jobs import ClientJobState, JobKind
from crawljobs.services.crawl_tracker import CrawlJobTracker
from crawljobs.services.crawler_api import CrawlerApiClient, CrawlerBackend

logger = logging.getLogger(__name__)


class TrackerRegistry:
    """Holds the tracker of each job kind and the backend client they share"""

    def __init__(self, api_factory: Callable[[], CrawlerBackend] = CrawlerApiClient):
        self._api_factory = api_factory
        self._api: Optional[CrawlerBackend] = None
        self._trackers: Dict[JobKind, CrawlJobTracker] = {}

    @property
    def api(self) -> CrawlerBackend:
        if self._api is None:
            self._api = self._api_factory()
        return self._api

    def configure(self, api: CrawlerBackend) -> None:
        """Drop existing trackers and use `api` for new ones"""
        self.stop_all()
        self._trackers.clear()
        self._api = api

    def get(self, kind: Union[JobKind, str]) -> CrawlJobTracker:
        kind = JobKind(kind)
        tracker = self._trackers.get(kind)
        if tracker is None:
            tracker = CrawlJobTracker(kind, self.api)
            tracker.on_complete(_log_completion)
            tracker.on_error(_log_failure(kind))
            self._trackers[kind] = tracker
        return tracker

    def states(self) -> Dict[JobKind, ClientJobState]:
        return {kind: self.get(kind).state for kind in JobKind}

    def stop_all(self) -> None:
        for tracker in self._trackers.values():
            tracker.stop()

    async def aclose(self) -> None:
        """Stop every tracker and close the backend client"""
        self.stop_all()
        self._trackers.clear()
        api, self._api = self._api, None
        close = getattr(api, "aclose", None)
        if close is not None:
            await close()


def _log_completion(state: ClientJobState) -> None:
    snapshot = state.latest_snapshot
    logger.info(
        f"{state.kind.value} collection finished: "
        f"{snapshot.success_count} succeeded, {snapshot.fail_count} failed"
    )


def _log_failure(kind: JobKind) -> Callable[[CrawlerError], None]:
    def handler(error: CrawlerError) -> None:
        logger.error(f"{kind.value} collection failed [{error.error_code}]: {error}")
    return handler


# Global instance
tracker_registry = TrackerRegistry()
