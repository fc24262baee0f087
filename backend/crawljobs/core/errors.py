"""
Error codes and exceptions shared by the crawl job tracker
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes surfaced in ClientJobState.error_code and API responses"""
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    JOB_FAILED = "JOB_FAILED"
    INVALID_RANGE = "INVALID_RANGE"
    JOB_ALREADY_TERMINAL = "JOB_ALREADY_TERMINAL"
    WORKER_UNAVAILABLE = "WORKER_UNAVAILABLE"
    START_FAILED = "START_FAILED"
    START_TIMEOUT = "START_TIMEOUT"
    STATUS_POLL_FAILED = "STATUS_POLL_FAILED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    @classmethod
    def lookup(cls, value: Any) -> Optional["ErrorCode"]:
        """Known code for a server-supplied string, or None"""
        try:
            return cls(value)
        except ValueError:
            return None


# HTTP statuses the backend uses for definitive (non-retryable) answers
_DEFINITIVE_STATUS_CODES: Dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_RANGE,
    409: ErrorCode.JOB_ALREADY_TERMINAL,
    503: ErrorCode.WORKER_UNAVAILABLE,
}


class CrawlerError(RuntimeError):
    """Base exception carrying a structured error code"""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.START_FAILED, *,
                 context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.context = context or {}

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    @property
    def error_code(self) -> str:
        """Code as reported by the server when it sent one, else our own"""
        return self.context.get("server_code") or self.code.value

    def __str__(self) -> str:
        return self.message or self.code.value


class CrawlerApiError(CrawlerError):
    """
    Failure talking to the crawler backend.

    `timeout` marks client-side timeouts (and gateway 408/504 answers), where the
    server may have accepted the request before the client gave up. `job_id` is
    set when the error payload still carried one.
    """

    def __init__(self, message: str, code: Optional[ErrorCode] = None, *,
                 status_code: Optional[int] = None, job_id: Optional[str] = None,
                 timeout: bool = False, context: Optional[Dict[str, Any]] = None) -> None:
        if code is None:
            if timeout:
                code = ErrorCode.START_TIMEOUT
            else:
                code = _DEFINITIVE_STATUS_CODES.get(status_code, ErrorCode.TRANSPORT_ERROR)
        super().__init__(message, code, context=context)
        self.status_code = status_code
        self.job_id = job_id
        self.timeout = timeout

    @property
    def is_definitive(self) -> bool:
        """True when retrying the same request cannot succeed"""
        return self.status_code in _DEFINITIVE_STATUS_CODES


class LaunchError(CrawlerError):
    """A job could not be started and no handle was created"""


class JobFailedError(CrawlerError):
    """A tracked job reached FAILED; passed to on_error callbacks"""

    def __init__(self, message: str, code: Optional[str] = None, *,
                 job_id: Optional[str] = None, checkpoint: Any = None) -> None:
        super().__init__(
            message,
            ErrorCode.lookup(code) or ErrorCode.JOB_FAILED,
            context={"job_id": job_id, "checkpoint": checkpoint, "server_code": code},
        )
        self.job_id = job_id
        self.checkpoint = checkpoint
