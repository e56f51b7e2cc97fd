"""Shared utilities (logging helpers)."""

__all__: list[str] = []
