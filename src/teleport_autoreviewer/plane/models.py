"""Resource snapshots received from the remote access-control plane.

The plane owns access requests; the service only ever holds a transient,
read-only snapshot of one per event. Snapshots are parsed from Teleport's
resource JSON:

    {
      "kind": "access_request",
      "metadata": {"name": "<request id>"},
      "spec": {"roles": ["db-admin"], "request_reason": "...", "state": "PENDING"}
    }
"""

from __future__ import annotations

__all__ = [
    "AccessRequest",
    "EventType",
    "RequestState",
    "WatchEvent",
    "parse_resource",
]

from dataclasses import dataclass
from enum import Enum
from typing import Any

from teleport_autoreviewer.constants import ACCESS_REQUEST_KIND


class RequestState(str, Enum):
    """Access request state.

    Inherits from str for easy serialization and comparison.

    Attributes:
        NONE: A state the service does not recognise. Never actionable.
        PENDING: Awaiting review; the only state the service evaluates.
        APPROVED: Granted by a reviewer.
        DENIED: Rejected by a reviewer (or by this service).
    """

    NONE = "NONE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"

    @classmethod
    def parse(cls, value: Any) -> "RequestState":
        """Parse a state string case-insensitively; unknown values map to NONE."""
        if not isinstance(value, str):
            return cls.NONE
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.NONE


class EventType(str, Enum):
    """Watch event type.

    Attributes:
        INIT: Sent once when a subscription is ready.
        PUT: Resource created or updated.
        DELETE: Resource removed.
    """

    INIT = "init"
    PUT = "put"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class AccessRequest:
    """Read-only snapshot of an access request.

    Attributes:
        id: Request ID (Teleport resource name).
        requested_roles: Roles the user asked for.
        reason: Free-text justification supplied by the user.
        state: Request state at the time of the snapshot.
    """

    id: str
    requested_roles: frozenset[str]
    reason: str
    state: RequestState

    @property
    def is_pending(self) -> bool:
        return self.state is RequestState.PENDING

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> "AccessRequest":
        """Build a snapshot from Teleport resource JSON.

        Args:
            resource: Resource dict with metadata and spec.

        Returns:
            AccessRequest snapshot.

        Raises:
            ValueError: If the resource has no name or a field has the
                wrong shape.
        """
        if not isinstance(resource, dict):
            raise ValueError(f"Access request resource must be an object, got {type(resource).__name__}")
        metadata = _section(resource, "metadata")
        spec = _section(resource, "spec")

        request_id = metadata.get("name")
        if not isinstance(request_id, str) or not request_id:
            raise ValueError("Access request resource has no metadata.name")

        roles = spec.get("roles") or []
        if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
            raise ValueError(f"Access request {request_id} has a malformed spec.roles (expected a list of strings)")
        return cls(
            id=request_id,
            requested_roles=frozenset(roles),
            reason=str(spec.get("request_reason") or ""),
            state=RequestState.parse(spec.get("state")),
        )


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A change notification from the watch stream.

    Attributes:
        type: What happened to the resource.
        kind: Resource kind as reported by the plane.
        resource: Parsed snapshot when the resource is an access request,
            otherwise None.
    """

    type: EventType
    kind: str
    resource: AccessRequest | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WatchEvent":
        """Build an event from one decoded stream message.

        Raises:
            ValueError: If the event type is unknown or the resource is malformed.
        """
        event_type = EventType(str(payload.get("type", "")).lower())
        raw = payload.get("resource") or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Watch event resource must be an object, got {type(raw).__name__}")
        kind = str(raw.get("kind", ""))
        return cls(type=event_type, kind=kind, resource=parse_resource(raw))


def _section(resource: dict[str, Any], key: str) -> dict[str, Any]:
    value = resource.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Access request {key} must be an object, got {type(value).__name__}")
    return value


def parse_resource(resource: dict[str, Any]) -> AccessRequest | None:
    """Return an AccessRequest for access-request resources, None for other kinds.

    Raises:
        ValueError: If an access-request resource is malformed.
    """
    if not isinstance(resource, dict):
        raise ValueError(f"Resource must be an object, got {type(resource).__name__}")
    if resource.get("kind") != ACCESS_REQUEST_KIND:
        return None
    return AccessRequest.from_resource(resource)
