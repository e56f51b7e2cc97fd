"""FastAPI app and uvicorn runner for the health endpoint.

The app exposes a single route (see routes/health.py). HealthServer runs it
inside the service's event loop using uvicorn's _serve(), so uvicorn does
not install its own signal handlers; the service driver owns shutdown.
"""

from __future__ import annotations

__all__ = [
    "HealthServer",
    "create_health_app",
]

import uvicorn
from fastapi import FastAPI

from teleport_autoreviewer import __version__
from teleport_autoreviewer.constants import DEFAULT_HEALTH_PATH
from teleport_autoreviewer.state import ServiceState
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

from .routes import health

_logger = get_system_logger()


def create_health_app(state: ServiceState, health_path: str = DEFAULT_HEALTH_PATH) -> FastAPI:
    """Create the FastAPI application serving the health endpoint.

    Args:
        state: Shared service state read by the endpoint.
        health_path: URL path of the endpoint.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="teleport-autoreviewer",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.service_state = state
    app.include_router(health.build_router(health_path))
    return app


class HealthServer:
    """Serves the health app on a TCP port until stopped.

    Args:
        app: FastAPI app from create_health_app().
        port: TCP port to listen on (all interfaces).
        host: Bind address.
    """

    def __init__(self, app: FastAPI, port: int, host: str = "0.0.0.0") -> None:
        self._port = port
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            ws="none",
            lifespan="off",
        )
        self._server = uvicorn.Server(config)

    @property
    def started(self) -> bool:
        return self._server.started

    async def serve(self) -> None:
        """Run until request_exit() is called or the task is cancelled."""
        _logger.info(
            {
                "event": "health_server_starting",
                "message": f"Health endpoint listening on port {self._port}",
                "port": self._port,
            }
        )
        try:
            await self._server._serve()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind
            raise OSError(f"Health server could not start on port {self._port}") from e

    def request_exit(self) -> None:
        """Ask uvicorn to finish serving; serve() returns shortly after."""
        self._server.should_exit = True
