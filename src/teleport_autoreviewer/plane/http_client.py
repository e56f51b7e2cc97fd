"""HTTP client for the remote access-control plane.

Speaks JSON over HTTPS with mutual TLS to a gateway in front of Teleport
(Teleport itself serves gRPC); the client certificate, key, and CA
bundle come from the identity file (see identity/credentials.py).

Endpoints (relative to the configured address):
    GET  /v2/ping                                  connection check
    GET  /v2/access_requests?state=PENDING         {"items": [resource, ...]}
    PUT  /v2/access_requests/{id}/state            {"state": "DENIED", "reason": "..."}
    GET  /v2/watch?kind=access_request             NDJSON event stream

All httpx failures are translated into the package's exception types so
callers never see transport-specific errors.
"""

from __future__ import annotations

__all__ = [
    "HttpAccessPlaneClient",
    "HttpAccessPlaneConnector",
    "HttpWatchStream",
]

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from teleport_autoreviewer.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, PLANE_API_PREFIX
from teleport_autoreviewer.exceptions import (
    AccessPlaneConnectionError,
    AccessPlaneError,
    TransientRequestError,
    WatchConnectionError,
)
from teleport_autoreviewer.plane.models import AccessRequest, RequestState, WatchEvent, parse_resource
from teleport_autoreviewer.plane.wire import decode_ndjson
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

if TYPE_CHECKING:
    from teleport_autoreviewer.identity.credentials import Credential

_logger = get_system_logger()


class HttpWatchStream:
    """Watch subscription backed by a streaming HTTP response.

    Undecodable lines and malformed events are logged and skipped; only a
    transport failure or the end of the response ends iteration.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._lines: AsyncIterator[str] = response.aiter_lines()
        self._closed = False

    def __aiter__(self) -> "HttpWatchStream":
        return self

    async def __anext__(self) -> WatchEvent:
        while True:
            try:
                line = await self._lines.__anext__()
            except httpx.HTTPError as e:
                raise WatchConnectionError(f"Watch stream failed: {e}") from e

            payload = decode_ndjson(line)
            if payload is None:
                if line.strip():
                    _logger.warning(
                        {
                            "event": "watch_line_invalid",
                            "message": "Ignoring watch line that is not a JSON object",
                        }
                    )
                continue
            try:
                return WatchEvent.from_dict(payload)
            except ValueError as e:
                _logger.warning(
                    {
                        "event": "watch_event_invalid",
                        "message": f"Ignoring malformed watch event: {e}",
                        "event_type": payload.get("type"),
                    }
                )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HttpAccessPlaneClient:
    """AccessPlaneClient over httpx.

    Args:
        client: Configured AsyncClient (base URL, TLS, timeout). Owned by this
            object and closed by close().
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def ping(self) -> None:
        try:
            response = await self._client.get(f"{PLANE_API_PREFIX}/ping")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AccessPlaneConnectionError(f"Cannot reach access plane at {self.base_url}: {e}") from e

    async def subscribe(self, kind: str) -> HttpWatchStream:
        # The stream idles between events, so it gets no read timeout
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)
        request = self._client.build_request(
            "GET",
            f"{PLANE_API_PREFIX}/watch",
            params={"kind": kind},
            timeout=timeout,
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise WatchConnectionError(f"Cannot open watch for {kind}: {e}") from e

        if response.is_error:
            status = response.status_code
            await response.aclose()
            raise WatchConnectionError(f"Watch for {kind} rejected with HTTP {status}")

        return HttpWatchStream(response)

    async def list_pending(self, kind: str) -> list[AccessRequest]:
        try:
            response = await self._client.get(
                f"{PLANE_API_PREFIX}/access_requests",
                params={"state": RequestState.PENDING.value},
            )
            response.raise_for_status()
            body: Any = response.json()
        except httpx.HTTPError as e:
            raise AccessPlaneError(f"Listing pending requests failed: {e}") from e
        except ValueError as e:
            raise AccessPlaneError(f"Listing pending requests returned invalid JSON: {e}") from e

        items = body.get("items") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise AccessPlaneError("Listing pending requests returned no 'items' list")

        requests: list[AccessRequest] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item.setdefault("kind", kind)
            try:
                request = parse_resource(item)
            except ValueError as e:
                _logger.warning(
                    {
                        "event": "pending_request_invalid",
                        "message": f"Ignoring malformed access request in listing: {e}",
                    }
                )
                continue
            if request is not None and request.is_pending:
                requests.append(request)
        return requests

    async def set_state(self, request_id: str, state: RequestState, reason: str) -> None:
        try:
            response = await self._client.put(
                f"{PLANE_API_PREFIX}/access_requests/{quote(request_id, safe='')}/state",
                json={"state": state.value, "reason": reason},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientRequestError(
                f"Setting request {request_id} to {state.value} failed: {e}",
                request_id=request_id,
            ) from e

    async def close(self) -> None:
        await self._client.aclose()


class HttpAccessPlaneConnector:
    """Opens mTLS connections to the plane from identity material.

    Args:
        base_url: Plane address with scheme (see TeleportConfig.base_url).
        timeout: Timeout for unary calls in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def connect(self, credential: "Credential") -> HttpAccessPlaneClient:
        """Build a client for the credential and verify it with a ping.

        Raises:
            CredentialError: If the credential cannot be loaded into TLS.
            AccessPlaneConnectionError: If the ping fails.
        """
        ssl_context = credential.ssl_context()
        client = HttpAccessPlaneClient(
            httpx.AsyncClient(
                base_url=self._base_url,
                verify=ssl_context,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        )
        try:
            await client.ping()
        except AccessPlaneConnectionError:
            await client.close()
            raise
        return client
