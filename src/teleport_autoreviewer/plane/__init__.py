"""Remote access-control plane: resource models, client protocols, HTTP client."""

from teleport_autoreviewer.plane.models import (
    AccessRequest,
    EventType,
    RequestState,
    WatchEvent,
    parse_resource,
)
from teleport_autoreviewer.plane.protocol import (
    AccessPlaneClient,
    AccessPlaneConnector,
    WatchStream,
)

__all__ = [
    "AccessPlaneClient",
    "AccessPlaneConnector",
    "AccessRequest",
    "EventType",
    "RequestState",
    "WatchEvent",
    "WatchStream",
    "parse_resource",
]
