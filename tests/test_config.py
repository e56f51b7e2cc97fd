"""Unit tests for configuration loading.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

from pathlib import Path

import pytest

from teleport_autoreviewer.config import AppConfig, TeleportConfig, parse_duration
from teleport_autoreviewer.constants import (
    DEFAULT_HEALTH_PATH,
    DEFAULT_HEALTH_PORT,
    DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS,
    DEFAULT_REJECTION_MESSAGE,
)
from teleport_autoreviewer.exceptions import ConfigurationError


@pytest.fixture
def write_config(tmp_path: Path):
    """Write YAML text to a config file and return its path."""

    def _write(text: str) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(text)
        return path

    return _write


MINIMAL = """
teleport:
  addr: teleport.example.com:3025
  identity: /var/lib/autoreviewer/identity
"""


class TestParseDuration:
    """Tests for Go-style duration parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1h", 3600.0),
            ("30m", 1800.0),
            ("1h30m", 5400.0),
            ("90s", 90.0),
            ("1.5s", 1.5),
            ("500ms", 0.5),
            ("120", 120.0),
            (45, 45.0),
        ],
    )
    def test_valid_durations(self, value, expected: float) -> None:
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "abc", "1x", "h1", "1h 30m", True])
    def test_invalid_durations(self, value) -> None:
        with pytest.raises(ValueError):
            parse_duration(value)


class TestTeleportConfig:
    """Tests for the teleport section."""

    def test_refresh_interval_defaults_to_one_hour(self) -> None:
        config = TeleportConfig(addr="tp:3025", identity="/id")

        assert config.identity_refresh_interval == DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS

    def test_zero_refresh_interval_uses_default(self) -> None:
        """Given interval 0, the default is used rather than disabling refresh."""
        config = TeleportConfig(addr="tp:3025", identity="/id", identity_refresh_interval="0s")

        assert config.identity_refresh_interval == DEFAULT_IDENTITY_REFRESH_INTERVAL_SECONDS

    def test_negative_refresh_interval_rejected(self) -> None:
        with pytest.raises(ValueError):
            TeleportConfig(addr="tp:3025", identity="/id", identity_refresh_interval=-5)

    def test_base_url_adds_https_scheme(self) -> None:
        config = TeleportConfig(addr="teleport.example.com:3025", identity="/id")

        assert config.base_url == "https://teleport.example.com:3025"

    def test_base_url_keeps_explicit_scheme(self) -> None:
        config = TeleportConfig(addr="http://localhost:3080/", identity="/id")

        assert config.base_url == "http://localhost:3080"


class TestLoadFromFile:
    """Tests for AppConfig.load_from_file."""

    def test_minimal_config_applies_defaults(self, write_config) -> None:
        # Arrange
        path = write_config(MINIMAL)

        # Act
        config = AppConfig.load_from_file(path)

        # Assert
        assert config.server.health_port == DEFAULT_HEALTH_PORT
        assert config.server.health_path == DEFAULT_HEALTH_PATH
        assert config.rejection.default_message == DEFAULT_REJECTION_MESSAGE
        assert config.rejection.rules == ()
        assert config.logging.log_level == "INFO"

    def test_full_config(self, write_config) -> None:
        # Arrange
        path = write_config(
            MINIMAL
            + """  identity_refresh_interval: 30m
server:
  health_port: 9090
  health_path: /healthz
rejection:
  default_message: Denied
  rules:
    - name: require-ticket
      reason_regex: "^JIRA-[0-9]+"
      roles_regex: "admin"
      message: Ticket required
    - name: no-root
      roles_regex: "^root$"
logging:
  log_level: DEBUG
"""
        )

        # Act
        config = AppConfig.load_from_file(path)

        # Assert
        assert config.teleport.identity_refresh_interval == 1800.0
        assert config.server.health_port == 9090
        assert config.server.health_path == "/healthz"
        assert config.rejection.default_message == "Denied"
        assert [rule.name for rule in config.rejection.rules] == ["require-ticket", "no-root"]
        assert config.rejection.rules[1].reason_regex is None
        assert config.rejection.rules[1].message == ""
        assert config.logging.log_level == "DEBUG"

    def test_empty_default_message_falls_back(self, write_config) -> None:
        path = write_config(MINIMAL + 'rejection:\n  default_message: ""\n  rules:\n')

        config = AppConfig.load_from_file(path)

        assert config.rejection.default_message == DEFAULT_REJECTION_MESSAGE
        assert config.rejection.rules == ()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            AppConfig.load_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml_raises(self, write_config) -> None:
        path = write_config("teleport: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            AppConfig.load_from_file(path)

    def test_missing_teleport_section_raises(self, write_config) -> None:
        path = write_config("server:\n  health_port: 8080\n")

        with pytest.raises(ConfigurationError, match="teleport"):
            AppConfig.load_from_file(path)

    def test_bad_port_raises(self, write_config) -> None:
        path = write_config(MINIMAL + "server:\n  health_port: 70000\n")

        with pytest.raises(ConfigurationError, match="health_port"):
            AppConfig.load_from_file(path)

    def test_non_mapping_document_raises(self, write_config) -> None:
        path = write_config("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            AppConfig.load_from_file(path)

    def test_configuration_error_exit_code(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig.load_from_file(tmp_path / "missing.yaml")

        assert exc_info.value.exit_code == 16
