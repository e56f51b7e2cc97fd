"""Application-wide constants for teleport-autoreviewer.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "DEFAULT_CONFIG_PATH",
    # Rejection defaults
    "DEFAULT_REJECTION_MESSAGE",
    # Identity refresh
    "DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS",
    "CONNECTION_DRAIN_TIMEOUT_SECONDS",
    # Remote plane
    "ACCESS_REQUEST_KIND",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "PLANE_API_PREFIX",
    # Watcher
    "DENIED_REQUEST_CACHE_SIZE",
    # Health server
    "DEFAULT_HEALTH_PORT",
    "DEFAULT_HEALTH_PATH",
    "HEALTH_SERVER_SHUTDOWN_TIMEOUT_SECONDS",
    # Shutdown
    "SHUTDOWN_TIMEOUT_SECONDS",
    # Logging
    "SYSTEM_LOG_FILENAME",
]

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "teleport-autoreviewer"

# Config file looked up in the working directory when --config is not given
DEFAULT_CONFIG_PATH: str = "config.yaml"

# ============================================================================
# Rejection Defaults
# ============================================================================

# Used when a matching rule has an empty message
DEFAULT_REJECTION_MESSAGE: str = "Access request rejected due to policy violation"

# ============================================================================
# Identity Refresh
# ============================================================================

# Identity files issued by `tctl auth sign` / tbot are short-lived, so the
# file is re-read hourly unless configured otherwise.
DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS: float = 3600.0

# How long a retired connection waits for in-flight users (the watch
# subscription, deny calls) before it is closed anyway.
CONNECTION_DRAIN_TIMEOUT_SECONDS: float = 30.0

# ============================================================================
# Remote Plane
# ============================================================================

# Resource kind for access requests (matches Teleport's types.KindAccessRequest)
ACCESS_REQUEST_KIND: str = "access_request"

# Timeout for unary plane calls (ping, list, set-state). The watch stream has
# no read timeout: it idles until the next event.
DEFAULT_HTTP_TIMEOUT_SECONDS: float = 30.0

PLANE_API_PREFIX: str = "/v2"

# ============================================================================
# Watcher
# ============================================================================

# Request IDs this process already denied; bounded so the set cannot grow
# without limit on long-running instances.
DENIED_REQUEST_CACHE_SIZE: int = 4096

# ============================================================================
# Health Server
# ============================================================================

DEFAULT_HEALTH_PORT: int = 8080
DEFAULT_HEALTH_PATH: str = "/health"
HEALTH_SERVER_SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

# ============================================================================
# Shutdown
# ============================================================================

# Hard deadline for all loops to exit after a shutdown signal
SHUTDOWN_TIMEOUT_SECONDS: float = 30.0

# ============================================================================
# Logging
# ============================================================================

SYSTEM_LOG_FILENAME: str = "system.jsonl"
