# src/hubmirror/config.py
"""
Configuration management for hubmirror.

Configuration Hierarchy:
    1. Default values (defined in this module)
    2. Config file (~/.hubmirror/config.toml, or HUBMIRROR_CONFIG_PATH)
    3. Environment variables (HUBMIRROR_<SECTION>_<KEY>)
    4. Runtime overrides (passed to load_config)

Example TOML configuration:
    [hubmirror.daemon]
    host = "docker-host:2375"
    api_version = "1.41"

    [hubmirror.forward_hub]
    domain = "fwd.example.com"
    username = "mirror-bot"
    password = "..."

    [hubmirror.source_hub]
    domain = "src.example.com"
    username = "reader"
    password = "..."

    [hubmirror.logging]
    console_enabled = true
"""

import copy
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .docker_engine import IDLE_CONNECTION_TIMEOUT, MAX_IDLE_CONNECTIONS
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "HUBMIRROR_"
CONFIG_PATH_ENV = "HUBMIRROR_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path.home() / ".hubmirror" / "config.toml"

DEFAULT_CONFIG: dict[str, Any] = {
    "daemon": {
        "host": "localhost:2375",
        "api_version": "auto",
        "max_idle_connections": MAX_IDLE_CONNECTIONS,
        "idle_connection_timeout": IDLE_CONNECTION_TIMEOUT,
        "disable_compression": True,
    },
    "forward_hub": {"domain": "", "username": "", "password": ""},
    "source_hub": {"domain": "", "username": "", "password": ""},
    "logging": {},
}


@dataclass
class DaemonConfig:
    """Container engine connection settings."""

    host: str = "localhost:2375"
    api_version: str = "auto"
    max_idle_connections: int = MAX_IDLE_CONNECTIONS
    idle_connection_timeout: int = IDLE_CONNECTION_TIMEOUT
    disable_compression: bool = True


@dataclass
class HubConfig:
    """Registry domain and login."""

    domain: str = ""
    username: str = ""
    password: str = field(default="", repr=False)


@dataclass
class HubMirrorConfig:
    """
    Complete hubmirror configuration.

    The ``logging`` section is passed through unchanged to
    :func:`hubmirror.logging_config.configure_logging`.
    """

    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    forward_hub: HubConfig = field(default_factory=HubConfig)
    source_hub: HubConfig = field(default_factory=HubConfig)
    logging: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """
        Check the settings needed to build an engine client handle.

        Raises:
            ConfigError: On the first missing or invalid setting
        """
        if not self.daemon.host:
            raise ConfigError("daemon.host must be set")
        if not self.daemon.api_version:
            raise ConfigError("daemon.api_version must be set")
        if self.daemon.max_idle_connections < 1:
            raise ConfigError(
                "daemon.max_idle_connections must be at least 1",
                details={"value": self.daemon.max_idle_connections},
            )
        if self.daemon.idle_connection_timeout <= 0:
            raise ConfigError(
                "daemon.idle_connection_timeout must be positive",
                details={"value": self.daemon.idle_connection_timeout},
            )
        for name, hub in (("forward_hub", self.forward_hub), ("source_hub", self.source_hub)):
            if not hub.domain:
                raise ConfigError(f"{name}.domain must be set")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary with passwords masked."""
        return {
            "daemon": {
                "host": self.daemon.host,
                "api_version": self.daemon.api_version,
                "max_idle_connections": self.daemon.max_idle_connections,
                "idle_connection_timeout": self.daemon.idle_connection_timeout,
                "disable_compression": self.daemon.disable_compression,
            },
            "forward_hub": {
                "domain": self.forward_hub.domain,
                "username": self.forward_hub.username,
                "password": "***" if self.forward_hub.password else "",
            },
            "source_hub": {
                "domain": self.source_hub.domain,
                "username": self.source_hub.username,
                "password": "***" if self.source_hub.password else "",
            },
            "logging": dict(self.logging),
        }


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts merge recursively."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str, current: Any) -> Any:
    """
    Parse an environment value to the type of the setting it replaces.

    Strings stay strings, so a numeric password or an API version such as
    "1.41" is not turned into a number.
    """
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
        raise ConfigError(f"Expected a boolean, got '{value}'")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(f"Expected an integer, got '{value}'") from e
    return value


def _apply_env_overrides(config: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern:
        HUBMIRROR_<SECTION>_<KEY>=value

    Examples:
        HUBMIRROR_DAEMON_HOST=docker-host:2375
        HUBMIRROR_FORWARD_HUB_PASSWORD=secret
        HUBMIRROR_DAEMON_IDLE_CONNECTION_TIMEOUT=120

    The logging section is not overridable from the environment.
    """
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue

        name = key[len(ENV_PREFIX) :].lower()
        for section, settings in config.items():
            if section == "logging" or not isinstance(settings, dict):
                continue
            if not name.startswith(section + "_"):
                continue
            setting = name[len(section) + 1 :]
            if setting in settings:
                settings[setting] = _parse_env_value(value, settings[setting])
                logger.debug(f"Config override from environment: {section}.{setting}")
            break

    return config


def load_toml_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load the ``[hubmirror]`` section of a TOML file.

    A missing file yields an empty dict; an unreadable one raises.

    Raises:
        ConfigError: If the file exists but is not valid TOML
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        config_path = Path(env_path).expanduser() if env_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, "rb") as f:
            full_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(
            f"Failed to load config from {config_path}: {e}", details={"path": str(config_path)}
        ) from e

    logger.debug(f"Loaded config from {config_path}")
    return full_config.get("hubmirror", {})


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> HubMirrorConfig:
    """
    Load complete hubmirror configuration.

    Configuration is loaded and merged in order:
        1. Default values
        2. TOML config file
        3. Environment variables
        4. Runtime overrides

    Args:
        config_path: Optional path to TOML config file
        overrides: Optional runtime overrides
        environ: Environment to read overrides from (default: os.environ)

    Returns:
        HubMirrorConfig instance (not yet validated)
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    toml_config = load_toml_config(config_path)
    if toml_config:
        config = _deep_merge(config, toml_config)

    config = _apply_env_overrides(config, dict(os.environ if environ is None else environ))

    if overrides:
        config = _deep_merge(config, overrides)

    daemon = config["daemon"]
    return HubMirrorConfig(
        daemon=DaemonConfig(
            host=daemon.get("host", "localhost:2375"),
            api_version=str(daemon.get("api_version", "auto")),
            max_idle_connections=daemon.get("max_idle_connections", MAX_IDLE_CONNECTIONS),
            idle_connection_timeout=daemon.get("idle_connection_timeout", IDLE_CONNECTION_TIMEOUT),
            disable_compression=daemon.get("disable_compression", True),
        ),
        forward_hub=HubConfig(**_hub_settings(config["forward_hub"])),
        source_hub=HubConfig(**_hub_settings(config["source_hub"])),
        logging=dict(config.get("logging") or {}),
    )


def _hub_settings(section: dict[str, Any]) -> dict[str, str]:
    return {
        "domain": str(section.get("domain", "")),
        "username": str(section.get("username", "")),
        "password": str(section.get("password", "")),
    }


def generate_sample_config() -> str:
    """Return sample TOML configuration file content."""
    return """# hubmirror configuration
# Place this in ~/.hubmirror/config.toml or point HUBMIRROR_CONFIG_PATH at it

[hubmirror.daemon]
# Docker daemon address; "http://" is prepended unless a scheme is given
host = "localhost:2375"

# Engine API version, e.g. "1.41", or "auto" to negotiate
api_version = "auto"

# Transport tuning
max_idle_connections = 10
idle_connection_timeout = 300
disable_compression = true

[hubmirror.forward_hub]
# Registry images are pushed to
domain = "forward.example.com"
username = ""
password = ""

[hubmirror.source_hub]
# Registry images are pulled from
domain = "source.example.com"
username = ""
password = ""

[hubmirror.logging]
console_enabled = false
file_enabled = true
file_directory = "~/.local/share/hubmirror/logs"
"""


def write_sample_config(path: Path | None = None) -> Path:
    """
    Write a sample configuration file.

    Args:
        path: Path to write to (default: ~/.hubmirror/config.toml.sample)

    Returns:
        Path where config was written
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH.with_name("config.toml.sample")

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(generate_sample_config())

    logger.info(f"Wrote sample config to {path}")
    return path
