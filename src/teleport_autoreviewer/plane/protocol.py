"""Protocols for the remote access-control plane.

The watcher and the credential manager depend only on these protocols, so
the HTTP client can be swapped for an in-memory plane in tests.
"""

from __future__ import annotations

__all__ = [
    "AccessPlaneClient",
    "AccessPlaneConnector",
    "WatchStream",
]

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from teleport_autoreviewer.identity.credentials import Credential
    from teleport_autoreviewer.plane.models import AccessRequest, RequestState, WatchEvent


@runtime_checkable
class WatchStream(Protocol):
    """An open subscription: an async iterator of watch events.

    Iteration ends (StopAsyncIteration) when the plane closes the stream.
    Transport failures raise WatchConnectionError.
    """

    def __aiter__(self) -> "WatchStream": ...

    async def __anext__(self) -> "WatchEvent": ...

    async def close(self) -> None:
        """Close the subscription. Safe to call more than once."""
        ...


@runtime_checkable
class AccessPlaneClient(Protocol):
    """Authenticated connection to the remote access-control plane."""

    async def ping(self) -> None:
        """Verify the connection is usable.

        Raises:
            AccessPlaneConnectionError: If the plane cannot be reached.
        """
        ...

    async def subscribe(self, kind: str) -> WatchStream:
        """Open a watch subscription for a resource kind.

        Raises:
            WatchConnectionError: If the subscription cannot be established.
        """
        ...

    async def list_pending(self, kind: str) -> list["AccessRequest"]:
        """List all requests currently in PENDING state.

        Raises:
            AccessPlaneError: If the listing fails.
        """
        ...

    async def set_state(self, request_id: str, state: "RequestState", reason: str) -> None:
        """Transition a request to a new state.

        Raises:
            TransientRequestError: If the transition fails.
        """
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...


class AccessPlaneConnector(Protocol):
    """Builds a connected client from identity material."""

    async def connect(self, credential: "Credential") -> AccessPlaneClient:
        """Open and verify a new connection.

        Raises:
            AccessPlaneConnectionError: If the connection cannot be established.
        """
        ...
