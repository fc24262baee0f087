"""
Bounded progress history for one tracked job
"""
from datetime import datetime
from typing import Callable, List, Optional

from crawljobs.models.jobs import JobStatusSnapshot, ProgressHistoryPoint
from crawljobs.core.config import settings


class ProgressRecorder:
    """Appends a point only when progress moved; keeps the most recent `capacity` points"""

    def __init__(self, capacity: Optional[int] = None, clock: Callable[[], datetime] = datetime.now):
        self._capacity = capacity if capacity is not None else settings.PROGRESS_HISTORY_LIMIT
        if self._capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, history: List[ProgressHistoryPoint],
               snapshot: JobStatusSnapshot) -> List[ProgressHistoryPoint]:
        """Return the new history; the input list is left untouched"""
        if history and history[-1].progress == snapshot.progress_percentage:
            return history

        point = ProgressHistoryPoint(
            timestamp=self._clock(),
            progress=snapshot.progress_percentage,
            processed_count=snapshot.processed_count,
        )
        return [*history, point][-self._capacity:]
