"""Sync trigger, progress and health routes."""
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlmodel import Session, select

from riksdag.config import UnknownResourceTypeError, get_settings
from riksdag.db.engine import get_session
from riksdag.models.sync import SyncAttempt, SyncCursor
from riksdag.models.trigger import SyncRequest, SyncResponse
from riksdag.opendata.sync_service import BatchSyncService, build_sync_service

router = APIRouter()

# One service per process so the circuit breaker and rate limiter see every call.
_service: Optional[BatchSyncService] = None


def get_sync_service() -> BatchSyncService:
    global _service
    if _service is None:
        _service = build_sync_service()
    return _service


async def close_sync_service() -> None:
    global _service
    if _service is not None:
        await _service.client.aclose()
        _service = None


@router.post("/trigger", response_model=SyncResponse)
async def trigger_sync(
    request: SyncRequest,
    response: Response,
    service: BatchSyncService = Depends(get_sync_service),
):
    """
    Run a sync cycle, a strategic plan, or a preview, and return its outcome.
    Failures come back as success=false with HTTP 502.
    """
    result = await service.handle(request)
    if not result.success:
        response.status_code = 502
    return result


@router.get("/cursors", response_model=List[SyncCursor])
def list_cursors(session: Session = Depends(get_session)):
    """Progress of every resource type."""
    return session.exec(select(SyncCursor).order_by(SyncCursor.resource_type)).all()


@router.post("/cursors/{resource_type}/reset", response_model=SyncCursor)
def reset_cursor(
    resource_type: str,
    service: BatchSyncService = Depends(get_sync_service),
):
    """Rewind a resource type so the next cycle starts from the first page."""
    try:
        return service.reset(resource_type)
    except UnknownResourceTypeError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/attempts", response_model=List[SyncAttempt])
def list_attempts(
    limit: int = 20,
    resource_type: Optional[str] = None,
    service: BatchSyncService = Depends(get_sync_service),
):
    """Most recent sync attempts, newest first."""
    return service.audit.recent(limit=limit, resource_type=resource_type or None)


@router.get("/attempts/stale", response_model=List[SyncAttempt])
def stale_attempts(service: BatchSyncService = Depends(get_sync_service)):
    """Attempts stuck in "running" longer than the configured bound."""
    minutes = get_settings().stale_attempt_minutes
    return service.audit.stale(timedelta(minutes=minutes))


@router.get("/health")
def sync_health(service: BatchSyncService = Depends(get_sync_service)):
    """Circuit breaker state and the last API health probe result."""
    client = service.client
    health = client.health
    return {
        "circuit_breaker": client.breaker.snapshot(),
        "api_healthy": health.is_healthy if health else None,
        "last_health_check": health.last_checked_at if health else None,
        "last_health_error": health.last_error if health else None,
        "rate_limit_cooldown_seconds": client.rate_limiter.cooldown_remaining(),
    }
