"""Application configuration for teleport-autoreviewer.

Defines configuration models for the Teleport connection, the health server,
rejection rules, and logging. The config is a YAML file (default
``config.yaml`` in the working directory).

Example usage:
    config = AppConfig.load_from_file(Path("config.yaml"))
    rules = compile_rules(config.rejection.rules)
"""

from __future__ import annotations

__all__ = [
    "AppConfig",
    "LoggingConfig",
    "RejectionConfig",
    "RejectionRuleConfig",
    "ServerConfig",
    "TeleportConfig",
    "parse_duration",
]

import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from teleport_autoreviewer.constants import (
    DEFAULT_HEALTH_PATH,
    DEFAULT_HEALTH_PORT,
    DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS,
    DEFAULT_REJECTION_MESSAGE,
)
from teleport_autoreviewer.exceptions import ConfigurationError

# One "<number><unit>" component of a Go-style duration ("1h30m", "1.5s")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")

_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str | int | float) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style duration strings, which is
    what existing deployments of the service already use in their configs.

    Args:
        value: Number of seconds, or a string such as "1h", "90s", "1h30m".

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the string is not a valid duration.

    Example:
        >>> parse_duration("1h30m")
        5400.0
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("Duration cannot be empty")
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


# =============================================================================
# Teleport Connection
# =============================================================================


class TeleportConfig(BaseModel):
    """Connection settings for the Teleport auth/proxy service.

    Attributes:
        addr: Address of the Teleport API (e.g., "teleport.example.com:3025").
            "https://" is assumed when no scheme is given.
        identity: Path to the identity file (output of `tctl auth sign` or tbot).
        identity_refresh_interval: Seconds between identity reloads. Accepts
            Go-style durations ("1h", "30m"). Zero or absent uses the default.
    """

    addr: str = Field(min_length=1)
    identity: str = Field(min_length=1)
    identity_refresh_interval: float = DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("identity_refresh_interval", mode="before")
    @classmethod
    def parse_refresh_interval(cls, v: Any) -> float:
        """Accept Go-style durations and fall back to the default for zero."""
        if v is None:
            return DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS
        seconds = parse_duration(v)
        if seconds < 0:
            raise ValueError("identity_refresh_interval cannot be negative")
        return seconds or DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS

    @property
    def base_url(self) -> str:
        """Address with an explicit scheme, suitable as an httpx base URL."""
        if "://" in self.addr:
            return self.addr.rstrip("/")
        return f"https://{self.addr.rstrip('/')}"


# =============================================================================
# Health Server
# =============================================================================


class ServerConfig(BaseModel):
    """Health endpoint settings.

    Attributes:
        health_port: TCP port for the health server.
        health_path: URL path of the health endpoint.
    """

    health_port: int = Field(default=DEFAULT_HEALTH_PORT, ge=1, le=65535)
    health_path: str = Field(default=DEFAULT_HEALTH_PATH, pattern=r"^/")

    model_config = ConfigDict(frozen=True, extra="ignore")


# =============================================================================
# Rejection Rules
# =============================================================================


class RejectionRuleConfig(BaseModel):
    """A single rejection rule as declared in the config file.

    A rule applies to a request when any requested role matches
    ``roles_regex`` (or always, when unset). An applicable rule denies the
    request when its reason does NOT match ``reason_regex`` (or always, when
    unset).

    Attributes:
        name: Rule identifier, used in logs.
        reason_regex: Pattern of acceptable justifications. Empty means none.
        roles_regex: Pattern selecting the roles the rule applies to.
        message: Denial reason sent to Teleport. Empty uses the default.
    """

    name: str = Field(min_length=1)
    reason_regex: str | None = None
    roles_regex: str | None = None
    message: str = ""

    model_config = ConfigDict(frozen=True, extra="ignore")


class RejectionConfig(BaseModel):
    """Rejection behavior.

    Attributes:
        default_message: Denial reason used when a rule's message is empty.
        rules: Ordered rule list. Order is evaluation order.
    """

    default_message: str = DEFAULT_REJECTION_MESSAGE
    rules: tuple[RejectionRuleConfig, ...] = ()

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("default_message", mode="before")
    @classmethod
    def default_when_empty(cls, v: Any) -> str:
        """Empty or missing message falls back to the built-in default."""
        return v or DEFAULT_REJECTION_MESSAGE

    @field_validator("rules", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        """`rules:` with no entries parses as None in YAML."""
        return () if v is None else v


# =============================================================================
# Logging
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Attributes:
        log_level: Console log level. DEBUG adds per-rule evaluation traces.
        log_dir: Directory for system.jsonl (warnings and errors). None keeps
            logging on stderr only.
    """

    log_level: Literal["DEBUG", "INFO", "WARNING"] = "INFO"
    log_dir: str | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")


# =============================================================================
# Application Config
# =============================================================================


class AppConfig(BaseModel):
    """Main application configuration for teleport-autoreviewer.

    Attributes:
        teleport: Teleport connection and identity settings.
        server: Health endpoint settings.
        rejection: Default message and ordered rejection rules.
        logging: Logging settings.
    """

    teleport: TeleportConfig
    server: ServerConfig = Field(default_factory=ServerConfig)
    rejection: RejectionConfig = Field(default_factory=RejectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the config YAML file.

        Returns:
            AppConfig instance with defaults applied.

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML,
                or fails validation.
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found at {config_path}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read config file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = ".".join(str(x) for x in error["loc"])
                errors.append(f"  - {loc}: {error['msg']}")
            raise ConfigurationError(
                f"Invalid configuration in {config_path}:\n" + "\n".join(errors)
            ) from e
