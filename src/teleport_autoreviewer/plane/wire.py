"""NDJSON decoding for the watch stream.

The plane streams one JSON object per line:
    {"type":"init"}\\n
    {"type":"put","resource":{"kind":"access_request","metadata":{"name":"..."},"spec":{...}}}\\n
    {"type":"delete","resource":{"kind":"access_request","metadata":{"name":"..."}}}\\n

Blank lines are keep-alives and decode to None, as do lines that are not a
JSON object.
"""

from __future__ import annotations

__all__ = [
    "decode_ndjson",
]

import json
from typing import Any


def decode_ndjson(line: str | bytes) -> dict[str, Any] | None:
    """Decode one NDJSON message.

    Args:
        line: One line of the stream (with or without trailing newline).

    Returns:
        Decoded dictionary, or None if the line is empty, invalid JSON,
        or not a JSON object.

    Example:
        >>> decode_ndjson('{"type":"init"}\\n')
        {'type': 'init'}
        >>> decode_ndjson("")
        None
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not line.strip():
        return None
    try:
        result = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(result, dict):
        return None
    return result
