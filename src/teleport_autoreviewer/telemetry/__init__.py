"""Telemetry domain: system events.

Structure:
    system/         System operational logs (stderr, optional system.jsonl)
"""

__all__: list[str] = []
