# tests/test_config.py
"""
Tests for configuration loading.

Tests:
    - Defaults
    - TOML file loading
    - Environment variable overrides
    - Runtime overrides and validation
    - Sample configuration
"""

import copy

import pytest

from hubmirror.config import (
    DEFAULT_CONFIG,
    HubMirrorConfig,
    _apply_env_overrides,
    generate_sample_config,
    load_config,
    load_toml_config,
    write_sample_config,
)
from hubmirror.exceptions import ConfigError

TOML = """
[hubmirror.daemon]
host = "docker-host:2375"
api_version = "1.41"
max_idle_connections = 4

[hubmirror.forward_hub]
domain = "fwd.io"
username = "pusher"
password = "fwd-secret"

[hubmirror.source_hub]
domain = "src.io"
username = "reader"
password = "src-secret"

[hubmirror.logging]
console_enabled = true
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(TOML)
    return path


class TestDefaults:
    def test_default_values(self, tmp_path):
        config = load_config(config_path=tmp_path / "missing.toml", environ={})

        assert config.daemon.host == "localhost:2375"
        assert config.daemon.api_version == "auto"
        assert config.daemon.max_idle_connections == 10
        assert config.daemon.idle_connection_timeout == 300
        assert config.daemon.disable_compression is True
        assert config.forward_hub.domain == ""
        assert config.logging == {}

    def test_defaults_not_mutated(self, tmp_path):
        load_config(
            config_path=tmp_path / "missing.toml",
            overrides={"daemon": {"host": "elsewhere:2375"}},
            environ={"HUBMIRROR_SOURCE_HUB_DOMAIN": "src.io"},
        )

        assert DEFAULT_CONFIG["daemon"]["host"] == "localhost:2375"
        assert DEFAULT_CONFIG["source_hub"]["domain"] == ""


class TestTomlLoading:
    def test_load_file(self, config_file):
        config = load_config(config_path=config_file, environ={})

        assert config.daemon.host == "docker-host:2375"
        assert config.daemon.api_version == "1.41"
        assert config.daemon.max_idle_connections == 4
        assert config.daemon.idle_connection_timeout == 300
        assert config.forward_hub.username == "pusher"
        assert config.source_hub.password == "src-secret"
        assert config.logging == {"console_enabled": True}
        config.validate()

    def test_missing_file_is_empty(self, tmp_path):
        assert load_toml_config(tmp_path / "nope.toml") == {}

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[hubmirror.daemon\nhost = ")

        with pytest.raises(ConfigError) as exc_info:
            load_toml_config(path)

        assert exc_info.value.details["path"] == str(path)

    def test_config_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("HUBMIRROR_CONFIG_PATH", str(config_file))

        assert load_toml_config()["daemon"]["host"] == "docker-host:2375"


class TestEnvironmentOverrides:
    def test_overrides_file(self, config_file):
        config = load_config(
            config_path=config_file,
            environ={
                "HUBMIRROR_DAEMON_HOST": "other-host:2376",
                "HUBMIRROR_FORWARD_HUB_PASSWORD": "from-env",
                "UNRELATED": "x",
            },
        )

        assert config.daemon.host == "other-host:2376"
        assert config.forward_hub.password == "from-env"
        assert config.source_hub.password == "src-secret"

    def test_types_follow_setting(self):
        config = _apply_env_overrides(
            copy.deepcopy(DEFAULT_CONFIG),
            {
                "HUBMIRROR_DAEMON_IDLE_CONNECTION_TIMEOUT": "120",
                "HUBMIRROR_DAEMON_DISABLE_COMPRESSION": "false",
                "HUBMIRROR_DAEMON_API_VERSION": "1.41",
                "HUBMIRROR_SOURCE_HUB_PASSWORD": "12345",
            },
        )

        assert config["daemon"]["idle_connection_timeout"] == 120
        assert config["daemon"]["disable_compression"] is False
        assert config["daemon"]["api_version"] == "1.41"
        assert config["source_hub"]["password"] == "12345"

    def test_bad_integer_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(
                config_path=tmp_path / "missing.toml",
                environ={"HUBMIRROR_DAEMON_MAX_IDLE_CONNECTIONS": "many"},
            )

    def test_bad_boolean_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(
                config_path=tmp_path / "missing.toml",
                environ={"HUBMIRROR_DAEMON_DISABLE_COMPRESSION": "maybe"},
            )

    def test_unknown_keys_ignored(self, tmp_path):
        config = load_config(
            config_path=tmp_path / "missing.toml",
            environ={"HUBMIRROR_DAEMON_COLOR": "blue", "HUBMIRROR_LOGGING_CONSOLE_ENABLED": "true"},
        )

        assert config.logging == {}


class TestOverridesAndValidation:
    def test_runtime_overrides_win(self, config_file):
        config = load_config(
            config_path=config_file,
            overrides={"daemon": {"host": "override:2375"}},
            environ={"HUBMIRROR_DAEMON_HOST": "env:2375"},
        )

        assert config.daemon.host == "override:2375"
        assert config.daemon.api_version == "1.41"

    def test_missing_domain(self):
        config = HubMirrorConfig()
        config.forward_hub.domain = "fwd.io"

        with pytest.raises(ConfigError, match="source_hub.domain"):
            config.validate()

    def test_invalid_pool_size(self, config_file):
        config = load_config(
            config_path=config_file, overrides={"daemon": {"max_idle_connections": 0}}, environ={}
        )

        with pytest.raises(ConfigError, match="max_idle_connections"):
            config.validate()

    def test_to_dict_masks_passwords(self, config_file):
        data = load_config(config_path=config_file, environ={}).to_dict()

        assert data["forward_hub"]["password"] == "***"
        assert data["source_hub"]["password"] == "***"
        assert data["forward_hub"]["username"] == "pusher"

    def test_repr_hides_passwords(self, config_file):
        config = load_config(config_path=config_file, environ={})

        assert "src-secret" not in repr(config)


class TestSampleConfig:
    def test_sample_loads(self, tmp_path):
        path = write_sample_config(tmp_path / "sub" / "config.toml")

        assert path.read_text() == generate_sample_config()
        config = load_config(config_path=path, environ={})
        assert config.forward_hub.domain == "forward.example.com"
        assert config.daemon.api_version == "auto"
        config.validate()
