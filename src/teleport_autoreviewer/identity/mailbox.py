"""Single-slot, latest-wins mailbox.

Publishing never blocks and overwrites any value not yet taken, so a slow
consumer only ever sees the most recent update. Consumers must tolerate
skipped intermediate values.
"""

from __future__ import annotations

__all__ = [
    "LatestValueMailbox",
]

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

_EMPTY = object()


class LatestValueMailbox(Generic[T]):
    """Replace-on-write channel holding at most one value.

    Example:
        >>> box = LatestValueMailbox[int]()
        >>> box.put(1)
        >>> box.put(2)
        >>> box.get_nowait()
        2
    """

    def __init__(self) -> None:
        self._value: object = _EMPTY
        self._ready = asyncio.Event()

    @property
    def has_value(self) -> bool:
        return self._value is not _EMPTY

    def put(self, value: T) -> None:
        """Store value, replacing any value not yet taken."""
        self._value = value
        self._ready.set()

    def get_nowait(self) -> T | None:
        """Take the value if one is waiting, else return None."""
        if self._value is _EMPTY:
            return None
        return self._take()

    async def get(self) -> T:
        """Wait for a value and take it."""
        while self._value is _EMPTY:
            await self._ready.wait()
        return self._take()

    def _take(self) -> T:
        value = self._value
        self._value = _EMPTY
        self._ready.clear()
        return value  # type: ignore[return-value]
