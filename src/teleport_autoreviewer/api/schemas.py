"""Health endpoint schemas."""

from __future__ import annotations

__all__ = [
    "HealthResponse",
]

from typing import Literal

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Service health.

    Timestamps are ISO 8601 UTC strings, None when the event never happened.
    """

    status: Literal["healthy", "unhealthy"]
    teleport_connected: bool
    identity_valid: bool
    last_request_processed: str | None
    last_identity_refresh: str | None
    uptime: str
