"""Health API: FastAPI app and uvicorn runner."""

from teleport_autoreviewer.api.server import HealthServer, create_health_app

__all__ = [
    "HealthServer",
    "create_health_app",
]
