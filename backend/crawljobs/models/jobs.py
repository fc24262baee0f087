"""
Crawl job models: wire snapshots from the crawler backend and client-side job state
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Union
from enum import Enum
from datetime import datetime


class JobKind(str, Enum):
    """Kinds of collection jobs the backend runs"""
    METADATA = "metadata"
    DETAILS = "details"
    DETAILS_REFRESH = "details_refresh"
    LANGUAGE = "language"

    @property
    def requires_range(self) -> bool:
        """Metadata collection cannot start without a problem id range"""
        return self is JobKind.METADATA

    @property
    def accepts_range(self) -> bool:
        return self in (JobKind.METADATA, JobKind.DETAILS_REFRESH)


class JobStatus(str, Enum):
    """Job status as reported by the backend"""
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "JobStatus":
        # PENDING, QUEUED and anything newer are still in progress from our side
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.RUNNING


class Lifecycle(str, Enum):
    """Client-side lifecycle of one tracked job"""
    IDLE = "IDLE"
    LAUNCHING = "LAUNCHING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_LIFECYCLES = frozenset({Lifecycle.LAUNCHING, Lifecycle.RUNNING})
TERMINAL_LIFECYCLES = frozenset({Lifecycle.COMPLETED, Lifecycle.FAILED})


class CollectRangeParams(BaseModel):
    """Problem id range for range-bounded jobs"""
    start: int = Field(..., ge=1, description="First problem id (inclusive)")
    end: int = Field(..., ge=1, description="Last problem id (inclusive)")

    @model_validator(mode='after')
    def validate_order(self):
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) must not be greater than end ({self.end})")
        return self


class JobHandle(BaseModel):
    """Identifies one backend task instance"""
    model_config = ConfigDict(frozen=True)

    job_id: str
    kind: JobKind


class StartJobResponse(BaseModel):
    """Backend answer to a start request"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    message: Optional[str] = None


class JobStatusSnapshot(BaseModel):
    """Status of a job as returned by the backend status endpoint"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    job_id: Optional[str] = None
    job_type: Optional[str] = None
    status: str = JobStatus.RUNNING.value
    processed_count: int = 0
    total_count: int = 0
    success_count: int = 0
    fail_count: int = 0
    progress_percentage: int = 0
    estimated_remaining_seconds: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    range_start: Optional[int] = None
    range_end: Optional[int] = None
    last_checkpoint_id: Optional[Union[int, str]] = None
    queued_at: Optional[float] = None  # Unix seconds
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    last_heartbeat_at: Optional[float] = None
    queue_position: Optional[int] = None
    created_by: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def flatten_range(cls, data):
        """The backend nests the range as {"range": {"start": .., "end": ..}}"""
        if isinstance(data, dict) and isinstance(data.get("range"), dict):
            data = dict(data)
            window = data.pop("range")
            data.setdefault("rangeStart", window.get("start"))
            data.setdefault("rangeEnd", window.get("end"))
        return data

    @field_validator('progress_percentage', mode='before')
    @classmethod
    def clamp_progress(cls, v):
        if v is None:
            return 0
        return max(0, min(100, int(float(v))))

    @field_validator('estimated_remaining_seconds', mode='before')
    @classmethod
    def round_remaining(cls, v):
        if v is None:
            return None
        return int(round(float(v)))

    @property
    def job_status(self) -> JobStatus:
        return JobStatus.from_wire(self.status)

    @property
    def effective_total_count(self) -> int:
        """totalCount, or the inclusive range size when the backend has not counted yet"""
        if self.total_count > 0:
            return self.total_count
        if self.range_start is not None and self.range_end is not None:
            return max(0, self.range_end - self.range_start + 1)
        return 0


class ProgressHistoryPoint(BaseModel):
    """One recorded progress observation"""
    timestamp: datetime
    progress: int
    processed_count: int


class ClientJobState(BaseModel):
    """Everything the client knows about the job in one logical slot"""
    kind: JobKind
    params: Optional[CollectRangeParams] = None
    handle: Optional[JobHandle] = None
    lifecycle: Lifecycle = Lifecycle.IDLE
    latest_snapshot: Optional[JobStatusSnapshot] = None
    history: List[ProgressHistoryPoint] = Field(default_factory=list)
    consecutive_error_count: int = 0
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    backend_status: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_active(self) -> bool:
        return self.lifecycle in ACTIVE_LIFECYCLES

    @property
    def is_terminal(self) -> bool:
        return self.lifecycle in TERMINAL_LIFECYCLES

    @property
    def job_id(self) -> Optional[str]:
        return self.handle.job_id if self.handle else None

    @property
    def progress(self) -> int:
        return self.latest_snapshot.progress_percentage if self.latest_snapshot else 0

    @property
    def range_end(self) -> Optional[int]:
        return self.latest_snapshot.range_end if self.latest_snapshot else None

    @property
    def last_checkpoint_id(self) -> Optional[Union[int, str]]:
        return self.latest_snapshot.last_checkpoint_id if self.latest_snapshot else None
