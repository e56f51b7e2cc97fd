"""Credential lifecycle: load, connect, refresh, swap.

The manager owns the current ConnectionContext (credential + connected
client + generation number). A refresh is make-before-break:

1. Reload the identity file (unconditionally, every tick)
2. Open and verify a brand-new connection with it
3. Only then swap the new context in under the lock and publish it
4. Retire the previous context: close it once its leases drain, or after
   the drain timeout

A failed refresh never displaces the current context. It marks health
false and returns a failed RefreshResult; the next tick retries.
"""

from __future__ import annotations

__all__ = [
    "ConnectionContext",
    "CredentialManager",
    "RefreshResult",
]

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal

from teleport_autoreviewer.constants import (
    CONNECTION_DRAIN_TIMEOUT_SECONDS,
    DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS,
)
from teleport_autoreviewer.exceptions import AccessPlaneError, CredentialError
from teleport_autoreviewer.identity.credentials import Credential, load_identity_file
from teleport_autoreviewer.identity.mailbox import LatestValueMailbox
from teleport_autoreviewer.plane.protocol import AccessPlaneClient, AccessPlaneConnector
from teleport_autoreviewer.state import ServiceState
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

_logger = get_system_logger()


class ConnectionContext:
    """A credential and the connection built from it, swapped as one unit.

    Users of the connection hold a lease while they need it; a retired
    context is closed once its lease count reaches zero.

    Attributes:
        credential: Identity material the client authenticates with.
        client: Connected plane client.
        generation: Monotonic counter, 1 for the connection made at startup.
    """

    def __init__(self, credential: Credential, client: AccessPlaneClient, generation: int) -> None:
        self._credential = credential
        self._client = client
        self._generation = generation
        self._leases = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = False

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def client(self) -> AccessPlaneClient:
        return self._client

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def leases(self) -> int:
        return self._leases

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> AccessPlaneClient:
        """Take a lease and return the client. Pair with release()."""
        self._leases += 1
        self._drained.clear()
        return self._client

    def release(self) -> None:
        if self._leases == 0:
            return
        self._leases -= 1
        if self._leases == 0:
            self._drained.set()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[AccessPlaneClient]:
        """Hold a lease for the duration of the block."""
        client = self.acquire()
        try:
            yield client
        finally:
            self.release()

    async def wait_drained(self, timeout: float) -> bool:
        """Wait until no leases are held. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.close()


@dataclass(frozen=True, slots=True)
class RefreshResult:
    """Outcome of a single refresh cycle.

    Attributes:
        status: "success", "credential_error" (identity file unusable), or
            "connection_error" (new connection could not be established).
        generation: Generation of the context now current (on success).
        error: Error message (on failure).
        expires_at: Expiry of the newly loaded credential (on success).
    """

    status: Literal["success", "credential_error", "connection_error"]
    generation: int | None = None
    error: str | None = None
    expires_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class CredentialManager:
    """Owns the current ConnectionContext and keeps it refreshed.

    Usage:
        manager = CredentialManager(identity_path, connector, state)
        await manager.start()           # fatal on failure
        refresh_task = asyncio.create_task(manager.run_refresh_loop())
        ...
        await manager.close()

    Consumers read `current` for the live context and wait on `updates`
    (a latest-wins mailbox) to learn about swaps.

    Args:
        identity_path: Identity file to (re)load.
        connector: Builds connected clients from credentials.
        state: Shared health state to update.
        refresh_interval: Seconds between refreshes.
        drain_timeout: Max seconds a retired context waits for its leases.
        loader: Reads a Credential from a path (injectable for tests).
    """

    def __init__(
        self,
        identity_path: str | Path,
        connector: AccessPlaneConnector,
        state: ServiceState,
        refresh_interval: float = DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS,
        drain_timeout: float = CONNECTION_DRAIN_TIMEOUT_SECONDS,
        loader: Callable[[Path], Credential] = load_identity_file,
    ) -> None:
        self._identity_path = Path(identity_path)
        self._connector = connector
        self._state = state
        self._refresh_interval = refresh_interval
        self._drain_timeout = drain_timeout
        self._loader = loader

        self._current: ConnectionContext | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._updates: LatestValueMailbox[ConnectionContext] = LatestValueMailbox()
        self._retiring: set[asyncio.Task[None]] = set()

    @property
    def current(self) -> ConnectionContext:
        """The live context.

        Raises:
            RuntimeError: If start() has not completed.
        """
        if self._current is None:
            raise RuntimeError("CredentialManager has not been started")
        return self._current

    @property
    def updates(self) -> LatestValueMailbox[ConnectionContext]:
        return self._updates

    @property
    def refresh_interval(self) -> float:
        return self._refresh_interval

    async def start(self) -> ConnectionContext:
        """Load the identity file and open the first connection.

        Returns:
            The initial ConnectionContext (generation 1).

        Raises:
            CredentialError: If the identity file is unusable.
            AccessPlaneConnectionError: If the connection fails.
        """
        async with self._lock:
            credential = self._loader(self._identity_path)
            client = await self._connector.connect(credential)
            context = self._install(credential, client)

        _logger.info(
            {
                "event": "identity_loaded",
                "message": f"Connected to access plane as {credential.subject}",
                "generation": context.generation,
                "expires_at": credential.not_after.isoformat(),
            }
        )
        self._check_expiry(credential)
        return context

    async def refresh(self) -> RefreshResult:
        """Reload the identity and swap in a new connection.

        Returns:
            RefreshResult describing the outcome. Failures leave the current
            context in place.
        """
        async with self._lock:
            try:
                credential = self._loader(self._identity_path)
                client = await self._connector.connect(credential)
            except CredentialError as e:
                self._state.mark_identity_valid(False)
                _logger.error(
                    {
                        "event": "identity_refresh_failed",
                        "message": f"Identity refresh failed, keeping current connection: {e}",
                        "failure_type": e.failure_type,
                    }
                )
                return RefreshResult(status="credential_error", error=str(e))
            except AccessPlaneError as e:
                self._state.mark_identity_valid(False)
                self._state.mark_connected(False)
                _logger.error(
                    {
                        "event": "identity_refresh_failed",
                        "message": f"Cannot connect with refreshed identity, keeping current connection: {e}",
                        "failure_type": e.failure_type,
                    }
                )
                return RefreshResult(status="connection_error", error=str(e))

            previous = self._current
            context = self._install(credential, client)
            if previous is not None:
                self._retire(previous)

        _logger.info(
            {
                "event": "identity_refreshed",
                "message": f"Identity refreshed (generation {context.generation})",
                "generation": context.generation,
                "expires_at": credential.not_after.isoformat(),
            }
        )
        self._check_expiry(credential)
        return RefreshResult(
            status="success",
            generation=context.generation,
            expires_at=credential.not_after,
        )

    async def run_refresh_loop(self) -> None:
        """Refresh every refresh_interval seconds until cancelled."""
        while True:
            await asyncio.sleep(self._refresh_interval)
            await self.refresh()

    async def close(self) -> None:
        """Close the current context and any context still draining."""
        for task in list(self._retiring):
            task.cancel()
        if self._retiring:
            await asyncio.gather(*self._retiring, return_exceptions=True)
        if self._current is not None:
            await self._current.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _install(self, credential: Credential, client: AccessPlaneClient) -> ConnectionContext:
        self._generation += 1
        context = ConnectionContext(credential, client, self._generation)
        self._current = context
        self._state.record_refresh()
        self._updates.put(context)
        return context

    def _retire(self, context: ConnectionContext) -> None:
        task = asyncio.create_task(self._drain_and_close(context))
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)

    async def _drain_and_close(self, context: ConnectionContext) -> None:
        try:
            drained = await context.wait_drained(self._drain_timeout)
            if not drained:
                _logger.warning(
                    {
                        "event": "connection_drain_timeout",
                        "message": (
                            f"Closing connection generation {context.generation} "
                            f"with {context.leases} lease(s) still held"
                        ),
                        "generation": context.generation,
                    }
                )
        finally:
            await context.close()

    def _check_expiry(self, credential: Credential) -> None:
        if credential.expires_within(self._refresh_interval):
            _logger.warning(
                {
                    "event": "identity_expires_before_refresh",
                    "message": (
                        f"Identity certificate expires at {credential.not_after.isoformat()}, "
                        f"before the next refresh in {self._refresh_interval:.0f}s"
                    ),
                    "expires_at": credential.not_after.isoformat(),
                }
            )
