from .jobs import (
    JobKind,
    JobStatus,
    Lifecycle,
    CollectRangeParams,
    JobHandle,
    StartJobResponse,
    JobStatusSnapshot,
    ProgressHistoryPoint,
    ClientJobState
)

__all__ = [
    "JobKind",
    "JobStatus",
    "Lifecycle",
    "CollectRangeParams",
    "JobHandle",
    "StartJobResponse",
    "JobStatusSnapshot",
    "ProgressHistoryPoint",
    "ClientJobState"
]
