"""Shared fixtures: an in-memory access plane and identity file minting.

The fake plane stands in for Teleport: it stores access requests, hands out
watch streams, and records every state transition so tests can assert on
what the service actually did.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from teleport_autoreviewer.exceptions import AccessPlaneConnectionError, AccessPlaneError, TransientRequestError
from teleport_autoreviewer.identity.credentials import Credential
from teleport_autoreviewer.plane.models import AccessRequest, EventType, RequestState, WatchEvent
from teleport_autoreviewer.state import ServiceState

_END = object()


# ============================================================================
# Fake Plane
# ============================================================================


class FakeWatchStream:
    """Watch stream fed by the test through push()/end()/fail()."""

    def __init__(self, client: "FakeClient") -> None:
        self.client = client
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, event: WatchEvent) -> None:
        self._queue.put_nowait(event)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    def __aiter__(self) -> "FakeWatchStream":
        return self

    async def __anext__(self) -> WatchEvent:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class FakePlane:
    """Server-side state shared by every client connected to it."""

    def __init__(self) -> None:
        self.requests: dict[str, AccessRequest] = {}
        self.transitions: list[tuple[int, str, RequestState, str]] = []
        self.streams: list[FakeWatchStream] = []
        self.buffered_events: list[WatchEvent] = []
        self.fail_set_state_for: set[str] = set()
        self.fail_list = False
        self.fail_subscribe = False

    def add_request(
        self,
        request_id: str,
        roles: list[str],
        reason: str = "",
        state: RequestState = RequestState.PENDING,
    ) -> AccessRequest:
        request = AccessRequest(
            id=request_id,
            requested_roles=frozenset(roles),
            reason=reason,
            state=state,
        )
        self.requests[request_id] = request
        return request

    def emit(self, event: WatchEvent) -> None:
        for stream in self.streams:
            if not stream.closed:
                stream.push(event)

    @property
    def denied_ids(self) -> list[str]:
        return [request_id for _, request_id, state, _ in self.transitions if state is RequestState.DENIED]


class FakeClient:
    """AccessPlaneClient backed by a FakePlane."""

    def __init__(self, plane: FakePlane, generation: int) -> None:
        self.plane = plane
        self.generation = generation
        self.closed = False

    async def ping(self) -> None:
        return None

    async def subscribe(self, kind: str) -> FakeWatchStream:
        if self.closed:
            raise AccessPlaneConnectionError("client closed")
        if self.plane.fail_subscribe:
            raise AccessPlaneConnectionError("subscribe refused")
        stream = FakeWatchStream(self)
        for event in self.plane.buffered_events:
            stream.push(event)
        self.plane.buffered_events = []
        self.plane.streams.append(stream)
        return stream

    async def list_pending(self, kind: str) -> list[AccessRequest]:
        if self.plane.fail_list:
            raise AccessPlaneError("list failed")
        return [request for request in self.plane.requests.values() if request.is_pending]

    async def set_state(self, request_id: str, state: RequestState, reason: str) -> None:
        if self.closed:
            raise TransientRequestError("client closed", request_id=request_id)
        if request_id in self.plane.fail_set_state_for:
            raise TransientRequestError("plane rejected transition", request_id=request_id)
        self.plane.transitions.append((self.generation, request_id, state, reason))
        current = self.plane.requests.get(request_id)
        if current is not None:
            self.plane.requests[request_id] = AccessRequest(
                id=current.id,
                requested_roles=current.requested_roles,
                reason=current.reason,
                state=state,
            )

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """AccessPlaneConnector producing FakeClients; can be told to fail."""

    def __init__(self, plane: FakePlane) -> None:
        self.plane = plane
        self.clients: list[FakeClient] = []
        self.fail_with: Exception | None = None

    async def connect(self, credential: Credential) -> FakeClient:
        if self.fail_with is not None:
            raise self.fail_with
        client = FakeClient(self.plane, len(self.clients) + 1)
        self.clients.append(client)
        return client


def put_event(request: AccessRequest) -> WatchEvent:
    return WatchEvent(type=EventType.PUT, kind="access_request", resource=request)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def plane() -> FakePlane:
    return FakePlane()


@pytest.fixture
def connector(plane: FakePlane) -> FakeConnector:
    return FakeConnector(plane)


@pytest.fixture
def service_state() -> ServiceState:
    return ServiceState()


@pytest.fixture
def credential() -> Credential:
    """A credential valid for the next two hours (no real key material)."""
    now = datetime.now(UTC)
    return Credential(
        source=Path("identity"),
        private_key_pem=b"",
        certificate_pem=b"",
        ca_pem=b"",
        subject="CN=autoreviewer",
        not_before=now - timedelta(minutes=5),
        not_after=now + timedelta(hours=2),
    )


@pytest.fixture
def make_put_event() -> Callable[[AccessRequest], WatchEvent]:
    return put_event


@pytest.fixture
def eventually() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    """Wait (up to 2s) until a condition holds, yielding to the event loop."""

    async def _wait(condition: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not condition():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


# ============================================================================
# Identity Files
# ============================================================================


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _pem_key(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def make_identity_file(tmp_path: Path) -> Callable[..., Path]:
    """Write a Teleport-style identity file signed by a throwaway CA.

    Keyword args:
        not_before / not_after: Client certificate validity window.
        include_ca: Append the CA certificate.
        mismatched_key: Write a key that does not belong to the certificate.
        name: File name inside tmp_path.
    """

    def _make(
        not_before: datetime | None = None,
        not_after: datetime | None = None,
        include_ca: bool = True,
        mismatched_key: bool = False,
        name: str = "identity",
    ) -> Path:
        now = datetime.now(UTC)
        not_before = not_before or now - timedelta(minutes=5)
        not_after = not_after or now + timedelta(hours=2)

        ca_key = ec.generate_private_key(ec.SECP256R1())
        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(_name("test-ca"))
            .issuer_name(_name("test-ca"))
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=1))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(ca_key, hashes.SHA256())
        )

        client_key = ec.generate_private_key(ec.SECP256R1())
        client_cert = (
            x509.CertificateBuilder()
            .subject_name(_name("autoreviewer"))
            .issuer_name(ca_cert.subject)
            .public_key(client_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .sign(ca_key, hashes.SHA256())
        )

        written_key = ec.generate_private_key(ec.SECP256R1()) if mismatched_key else client_key
        parts = [
            _pem_key(written_key),
            b"ssh-ed25519-cert-v01@openssh.com AAAAC3NzaC1lZDI1NTE5 autoreviewer\n",
            client_cert.public_bytes(serialization.Encoding.PEM),
        ]
        if include_ca:
            parts.append(ca_cert.public_bytes(serialization.Encoding.PEM))
            parts.append(b"@cert-authority *.example.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5\n")

        path = tmp_path / name
        path.write_bytes(b"".join(parts))
        return path

    return _make
