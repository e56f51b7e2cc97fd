"""Health endpoint.

Provides:
- GET <health_path> - 200 when connected to the plane with a valid identity,
  503 otherwise. Other methods get 405.

The path is configurable, so the router is built per app by build_router().
"""

from __future__ import annotations

__all__ = [
    "build_router",
    "format_uptime",
    "get_health",
]

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from teleport_autoreviewer.api.deps import ServiceStateDep
from teleport_autoreviewer.api.schemas import HealthResponse
from teleport_autoreviewer.state import HealthSnapshot
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

_logger = get_system_logger()


def format_uptime(seconds: float) -> str:
    """Format a duration like Go's time.Duration, rounded to whole seconds.

    Example:
        >>> format_uptime(3723)
        '1h2m3s'
        >>> format_uptime(59.6)
        '1m0s'
    """
    total = int(round(max(seconds, 0.0)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def _iso(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _build_response(snapshot: HealthSnapshot) -> HealthResponse:
    return HealthResponse(
        status="healthy" if snapshot.healthy else "unhealthy",
        teleport_connected=snapshot.connected,
        identity_valid=snapshot.identity_valid,
        last_request_processed=_iso(snapshot.last_request_seen),
        last_identity_refresh=_iso(snapshot.last_refresh),
        uptime=format_uptime(snapshot.uptime_seconds),
    )


async def get_health(state: ServiceStateDep) -> JSONResponse:
    """Report connectivity and identity health.

    Returns:
        HealthResponse as JSON; 200 if healthy, 503 if not, 500 if the
        response cannot be built.
    """
    snapshot = state.snapshot()
    try:
        body = _build_response(snapshot).model_dump(mode="json")
    except (ValueError, TypeError) as e:
        _logger.error(
            {
                "event": "health_response_failed",
                "message": f"Failed to build health response: {e}",
            }
        )
        return JSONResponse(status_code=500, content={"error": "failed to encode health status"})

    return JSONResponse(status_code=200 if snapshot.healthy else 503, content=body)


def build_router(path: str) -> APIRouter:
    """Router exposing get_health at `path` (GET only)."""
    router = APIRouter()
    router.add_api_route(path, get_health, methods=["GET"], response_model=None)
    return router
