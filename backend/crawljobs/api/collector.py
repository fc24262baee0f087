"""
Collector API endpoints: start, restart, stop and inspect crawl jobs
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from typing import Dict, Optional
import logging

from crawljobs.core.errors import ErrorCode, LaunchError
from crawljobs.models.jobs import ClientJobState, CollectRangeParams, JobKind
from crawljobs.services.tracker_registry import tracker_registry

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_CODE = {
    ErrorCode.INVALID_RANGE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.JOB_ALREADY_TERMINAL: status.HTTP_409_CONFLICT,
    ErrorCode.WORKER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get("/collector", response_model=Dict[str, ClientJobState])
async def list_collector_states():
    """
    Current state of every job kind
    """
    return {kind.value: state for kind, state in tracker_registry.states().items()}


@router.get("/collector/{kind}", response_model=ClientJobState)
async def get_collector_state(kind: JobKind):
    """
    Current state of one job kind
    """
    return tracker_registry.get(kind).state


@router.post("/collector/{kind}/start", response_model=ClientJobState)
async def start_collector(kind: JobKind, params: Optional[CollectRangeParams] = None):
    """
    Start a job; a no-op while one of the same kind is launching or running
    """
    try:
        return await tracker_registry.get(kind).start(params)
    except LaunchError as e:
        return _launch_error_response(e)


@router.post("/collector/{kind}/restart", response_model=ClientJobState)
async def restart_collector(kind: JobKind, params: Optional[CollectRangeParams] = None):
    """
    Restart a job, resuming after the last checkpoint when the previous run failed
    """
    try:
        return await tracker_registry.get(kind).restart(params)
    except LaunchError as e:
        return _launch_error_response(e)


@router.post("/collector/{kind}/stop", response_model=ClientJobState)
async def stop_collector(kind: JobKind):
    """
    Stop polling a job (the backend job itself keeps running)
    """
    tracker = tracker_registry.get(kind)
    tracker.stop()
    return tracker.state


def _launch_error_response(error: LaunchError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(error.code, status.HTTP_502_BAD_GATEWAY)
    return JSONResponse(
        status_code=status_code,
        content={
            "code": error.error_code,
            "message": error.message,
            "field": "start" if error.code == ErrorCode.INVALID_RANGE else None
        }
    )
