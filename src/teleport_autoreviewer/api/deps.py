"""Shared dependencies for API routes.

Usage with Annotated:
    from teleport_autoreviewer.api.deps import ServiceStateDep

    async def get_health(state: ServiceStateDep) -> JSONResponse:
        ...
"""

from __future__ import annotations

__all__ = [
    "ServiceStateDep",
    "get_service_state",
]

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from teleport_autoreviewer.state import ServiceState


def get_service_state(request: Request) -> ServiceState:
    """Get the ServiceState registered on the app.

    Raises:
        HTTPException: 503 if no state is registered.
    """
    state = getattr(request.app.state, "service_state", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Service state not available")
    return state


ServiceStateDep = Annotated[ServiceState, Depends(get_service_state)]
