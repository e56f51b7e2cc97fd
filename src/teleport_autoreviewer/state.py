"""Shared service state for health reporting.

ServiceState is the single owner of the health flags and activity
timestamps. Components update it through the mark_*/record_* methods and
the health endpoint reads a consistent copy through snapshot().
"""

from __future__ import annotations

__all__ = [
    "HealthSnapshot",
    "ServiceState",
]

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class HealthSnapshot:
    """Point-in-time copy of the service health.

    Attributes:
        connected: Connection to the remote plane is up.
        identity_valid: The most recent identity load succeeded.
        last_refresh: Last successful identity refresh, None if never.
        last_request_seen: Last time a pending request was reviewed, None if never.
        started_at: When the service state was created.
        now: When the snapshot was taken.
    """

    connected: bool
    identity_valid: bool
    last_refresh: datetime | None
    last_request_seen: datetime | None
    started_at: datetime
    now: datetime

    @property
    def healthy(self) -> bool:
        return self.connected and self.identity_valid

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, (self.now - self.started_at).total_seconds())


class ServiceState:
    """Health flags and timestamps shared by the service loops.

    Flags start false and are only set back to true by a later successful
    operation.

    Args:
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._connected = False
        self._identity_valid = False
        self._last_refresh: datetime | None = None
        self._last_request_seen: datetime | None = None
        self._started_at = clock()

    def mark_connected(self, connected: bool) -> None:
        with self._lock:
            self._connected = connected

    def mark_identity_valid(self, valid: bool) -> None:
        with self._lock:
            self._identity_valid = valid

    def record_refresh(self) -> None:
        """Record a successful identity load and connection."""
        now = self._clock()
        with self._lock:
            self._identity_valid = True
            self._connected = True
            self._last_refresh = now

    def record_request_seen(self) -> None:
        now = self._clock()
        with self._lock:
            self._last_request_seen = now

    def snapshot(self) -> HealthSnapshot:
        now = self._clock()
        with self._lock:
            return HealthSnapshot(
                connected=self._connected,
                identity_valid=self._identity_valid,
                last_refresh=self._last_refresh,
                last_request_seen=self._last_request_seen,
                started_at=self._started_at,
                now=now,
            )
