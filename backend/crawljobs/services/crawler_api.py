"""
HTTP client for the crawler backend (job start and status endpoints)
"""
import httpx
from pydantic import ValidationError
from typing import Any, Dict, Optional, Protocol
import logging

from crawljobs.core.config import settings
from crawljobs.core.errors import CrawlerApiError, ErrorCode
from crawljobs.models.jobs import CollectRangeParams, JobKind, JobStatusSnapshot, StartJobResponse

logger = logging.getLogger(__name__)


_ENDPOINTS: Dict[JobKind, str] = {
    JobKind.METADATA: "/admin/problems/collect-metadata",
    JobKind.DETAILS: "/admin/problems/collect-details",
    JobKind.DETAILS_REFRESH: "/admin/problems/refresh-details",
    JobKind.LANGUAGE: "/admin/problems/update-language",
}

# Gateways answer these when the upstream did not respond in time
_TIMEOUT_STATUS_CODES = {408, 504}


class CrawlerBackend(Protocol):
    """What the tracker needs from the backend; CrawlerApiClient is the HTTP implementation"""

    async def start_job(self, kind: JobKind, params: Optional[CollectRangeParams] = None) -> StartJobResponse:
        ...

    async def get_job_status(self, kind: JobKind, job_id: str) -> Optional[JobStatusSnapshot]:
        ...


class CrawlerApiClient:
    """Async client for starting crawl jobs and querying their status"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        start_timeout: Optional[float] = None,
        status_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._start_timeout = start_timeout if start_timeout is not None else settings.START_TIMEOUT_SECONDS
        self._status_timeout = status_timeout if status_timeout is not None else settings.STATUS_TIMEOUT_SECONDS

        headers = {"Content-Type": "application/json"}
        token = token if token is not None else settings.API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "CrawlerApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def start_job(self, kind: JobKind, params: Optional[CollectRangeParams] = None) -> StartJobResponse:
        """
        Ask the backend to start a job of the given kind.
        The backend resumes from its own checkpoint when one exists for the same range.
        """
        query = params.model_dump() if params is not None else None
        response = await self._request(
            "POST", _ENDPOINTS[kind], params=query, timeout=self._start_timeout, action=f"start {kind.value} job"
        )
        self._raise_for_status(response, f"start {kind.value} job")
        started = self._parse(StartJobResponse, response)
        logger.info(f"Backend accepted {kind.value} job {started.job_id}")
        return started

    async def get_job_status(self, kind: JobKind, job_id: str) -> Optional[JobStatusSnapshot]:
        """
        Query job status.
        Returns None when the backend has no record of the job (404).
        """
        response = await self._request(
            "GET", f"{_ENDPOINTS[kind]}/status/{job_id}", timeout=self._status_timeout,
            action=f"query status of job {job_id}"
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"query status of job {job_id}")
        return self._parse(JobStatusSnapshot, response)

    async def _request(self, method: str, url: str, *, action: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise CrawlerApiError(f"Timed out trying to {action}: {e}", timeout=True) from e
        except httpx.HTTPError as e:
            raise CrawlerApiError(f"Could not {action}: {e}", ErrorCode.TRANSPORT_ERROR) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return

        body = _json_body(response)
        message = body.get("message") or f"Failed to {action} (HTTP {response.status_code})"
        code = body.get("code")
        job_id = body.get("jobId")
        raise CrawlerApiError(
            message,
            ErrorCode.lookup(code),
            status_code=response.status_code,
            job_id=str(job_id) if job_id is not None else None,
            timeout=response.status_code in _TIMEOUT_STATUS_CODES,
            context={"body": body, "server_code": code},
        )

    @staticmethod
    def _parse(model, response: httpx.Response):
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CrawlerApiError(
                f"Unexpected response from {response.request.url}: {e}",
                ErrorCode.INVALID_RESPONSE,
                status_code=response.status_code,
            ) from e


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
