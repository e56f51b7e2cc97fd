"""Custom exceptions for teleport-autoreviewer.

This module contains all custom exceptions used throughout the package.
Exceptions are organized by how far a failure is allowed to travel:

Fatal at startup (service must not begin watching):
    - ConfigurationError: Malformed rule pattern or config file

Session-level (ends the owning loop, propagated to the driver):
    - AccessPlaneConnectionError: Connection to the plane failed
    - WatchConnectionError: Watch subscription failed or its stream ended

Recovered locally (logged, loop continues):
    - CredentialError: Identity material could not be loaded during refresh
    - TransientRequestError: A single deny transition failed

Usage:
    from teleport_autoreviewer.exceptions import ConfigurationError, CredentialError
"""

from __future__ import annotations

__all__ = [
    "AccessPlaneConnectionError",
    "AccessPlaneError",
    "AutoreviewerError",
    "ConfigurationError",
    "CredentialError",
    "TransientRequestError",
    "WatchConnectionError",
]


class AutoreviewerError(Exception):
    """Base exception for all teleport-autoreviewer failures.

    Attributes:
        exit_code: Process exit code when this failure stops the service.
        failure_type: Category string for logging.
    """

    exit_code: int = 1
    failure_type: str = "unknown"


class ConfigurationError(AutoreviewerError):
    """Configuration is invalid or a rule pattern does not compile.

    Raised when:
    - Config file does not exist or is not valid YAML
    - Config file fails Pydantic validation
    - A rule's reason_regex or roles_regex is not a valid regular expression

    No partial rule set is ever used: the service stops before watching.
    Exit code 16 indicates configuration failure.

    Attributes:
        rule_name: Name of the offending rule (None for file-level errors).
        pattern: The pattern that failed to compile (None for file-level errors).
    """

    exit_code = 16
    failure_type = "configuration_failure"

    def __init__(
        self,
        message: str,
        *,
        rule_name: str | None = None,
        pattern: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.rule_name = rule_name
        self.pattern = pattern

    def __str__(self) -> str:
        return self.message


class CredentialError(AutoreviewerError):
    """Identity material could not be loaded or is not usable.

    Raised when:
    - The identity file is missing or unreadable
    - It lacks a private key or client certificate
    - The key does not match the certificate
    - The certificate is outside its validity window

    At startup this is fatal. During a refresh cycle the current connection
    stays in place and the next tick retries.
    Exit code 13 indicates identity failure.
    """

    exit_code = 13
    failure_type = "credential_failure"


class AccessPlaneError(AutoreviewerError):
    """A call to the remote access-control plane failed."""

    failure_type = "access_plane_failure"


class AccessPlaneConnectionError(AccessPlaneError):
    """Connection to the remote plane could not be established or was lost.

    Marks connectivity unhealthy and ends the affected loop. There is no
    internal reconnect: restarting is up to the process supervisor.
    Exit code 17 indicates connection failure.
    """

    exit_code = 17
    failure_type = "connection_failure"


class WatchConnectionError(AccessPlaneConnectionError):
    """The watch subscription failed or its event stream ended unexpectedly."""

    failure_type = "watch_failure"


class TransientRequestError(AccessPlaneError):
    """A single deny transition failed.

    The request stays Pending and is not retried. Other requests and the
    watch loop are unaffected.

    Attributes:
        request_id: ID of the request the transition was issued for.
    """

    failure_type = "request_failure"

    def __init__(self, message: str, *, request_id: str) -> None:
        super().__init__(message)
        self.request_id = request_id
