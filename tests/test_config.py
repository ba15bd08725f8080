"""Tests for configuration loading from environment variables."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from podsingress.core.config import (
    IngressConfig,
    clear_config,
    get_config,
    load_config_from_file,
    read_document,
)

_ENV_VARS = (
    "API_KEY_SECRET_LOCATION",
    "HOSTS_ANNOTATION",
    "PATHS_ANNOTATION",
    "PORT",
    "ROUTABLE_LABEL_SELECTOR",
    "API_KEY_HEADER",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run every test without inherited settings or a stray .env file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_config()
    yield
    clear_config()


class TestIngressConfigDefaults:
    """Test IngressConfig default values."""

    def test_default_values(self) -> None:
        """Test default values."""
        config = IngressConfig()
        assert config.api_key_secret == "routing"
        assert config.api_key_secret_data_field == "api-key"
        assert config.hosts_annotation == "routingHosts"
        assert config.paths_annotation == "routingPaths"
        assert config.port == 80
        assert config.routable_label_selector == "routable=true"
        assert config.api_key_header == "X-Ingress-API-Key"
        assert config.log_level == "warning"

    def test_empty_values_use_defaults(self) -> None:
        """Test empty env vars fall back to defaults."""
        env = {"PORT": "", "HOSTS_ANNOTATION": "", "API_KEY_SECRET_LOCATION": ""}
        with patch.dict(os.environ, env):
            config = IngressConfig()
            assert config.port == 80
            assert config.hosts_annotation == "routingHosts"
            assert config.api_key_secret_location == "routing:api-key"


class TestIngressConfigEnv:
    """Test environment variable overrides."""

    def test_env_override_secret_location(self) -> None:
        """Test API_KEY_SECRET_LOCATION env var."""
        with patch.dict(os.environ, {"API_KEY_SECRET_LOCATION": "keys:token"}):
            config = IngressConfig()
            assert config.api_key_secret == "keys"
            assert config.api_key_secret_data_field == "token"

    def test_env_override_annotations(self) -> None:
        """Test HOSTS_ANNOTATION and PATHS_ANNOTATION env vars."""
        env = {"HOSTS_ANNOTATION": "example.com/hosts", "PATHS_ANNOTATION": "myPaths"}
        with patch.dict(os.environ, env):
            config = IngressConfig()
            assert config.hosts_annotation == "example.com/hosts"
            assert config.paths_annotation == "myPaths"

    def test_env_override_port(self) -> None:
        """Test PORT env var."""
        with patch.dict(os.environ, {"PORT": "8080"}):
            assert IngressConfig().port == 8080

    def test_env_override_selector(self) -> None:
        """Test ROUTABLE_LABEL_SELECTOR env var."""
        with patch.dict(os.environ, {"ROUTABLE_LABEL_SELECTOR": "tier in (web,api)"}):
            assert IngressConfig().routable_label_selector == "tier in (web,api)"


class TestIngressConfigValidation:
    """Test invalid configuration is rejected with helpful messages."""

    @pytest.mark.parametrize("value", ["routing", "a:b:c", ":api-key"])
    def test_invalid_secret_location(self, value) -> None:
        """Test secret locations not in name:field form."""
        with patch.dict(os.environ, {"API_KEY_SECRET_LOCATION": value}):
            with pytest.raises(ValidationError, match="API_KEY_SECRET_LOCATION is not in the format"):
                IngressConfig()

    def test_invalid_hosts_annotation(self) -> None:
        """Test HOSTS_ANNOTATION must be a qualified name."""
        with patch.dict(os.environ, {"HOSTS_ANNOTATION": "bad annotation"}):
            with pytest.raises(ValidationError, match="HOSTS_ANNOTATION has an invalid annotation name"):
                IngressConfig()

    def test_invalid_paths_annotation(self) -> None:
        """Test PATHS_ANNOTATION must be a qualified name."""
        with patch.dict(os.environ, {"PATHS_ANNOTATION": "-paths"}):
            with pytest.raises(ValidationError, match="PATHS_ANNOTATION has an invalid annotation name"):
                IngressConfig()

    @pytest.mark.parametrize("value", ["abc", "0", "65536", "-1"])
    def test_invalid_port(self, value) -> None:
        """Test PORT must be a valid TCP port."""
        with patch.dict(os.environ, {"PORT": value}):
            with pytest.raises(ValidationError, match="PORT is an invalid port"):
                IngressConfig()

    def test_invalid_selector(self) -> None:
        """Test ROUTABLE_LABEL_SELECTOR must parse."""
        with patch.dict(os.environ, {"ROUTABLE_LABEL_SELECTOR": "tier in (web"}):
            with pytest.raises(ValidationError, match="ROUTABLE_LABEL_SELECTOR has an invalid label selector"):
                IngressConfig()

    def test_invalid_header(self) -> None:
        """Test API_KEY_HEADER must be a plain header name."""
        with patch.dict(os.environ, {"API_KEY_HEADER": "X Key"}):
            with pytest.raises(ValidationError):
                IngressConfig()

    def test_invalid_log_level(self) -> None:
        """Test LOG_LEVEL must be a known level."""
        with patch.dict(os.environ, {"LOG_LEVEL": "loud"}):
            with pytest.raises(ValidationError):
                IngressConfig()


class TestGetConfig:
    """Test the cached global configuration."""

    def test_get_config_is_cached(self) -> None:
        """Test get_config returns the same instance."""
        assert get_config() is get_config()

    def test_clear_config_reloads(self) -> None:
        """Test clear_config picks up new environment values."""
        assert get_config().port == 80
        with patch.dict(os.environ, {"PORT": "9090"}):
            clear_config()
            assert get_config().port == 9090

    def test_to_display_dict(self) -> None:
        """Test the display dictionary lists every setting."""
        display = IngressConfig().to_display_dict()
        assert display["api_key_secret"] == "routing"
        assert display["port"] == 80
        assert set(display) == {
            "api_key_secret",
            "api_key_secret_data_field",
            "hosts_annotation",
            "paths_annotation",
            "port",
            "routable_label_selector",
            "api_key_header",
            "log_level",
        }


class TestLoadConfigFromFile:
    """Test loading YAML/TOML files."""

    def test_load_yaml(self, tmp_path) -> None:
        """Test YAML files are parsed."""
        path = tmp_path / "config.yaml"
        path.write_text("port: 8080\n")
        assert load_config_from_file(path) == {"port": 8080}

    def test_load_toml(self, tmp_path) -> None:
        """Test TOML files are parsed."""
        path = tmp_path / "config.toml"
        path.write_text("port = 8080\n")
        assert load_config_from_file(path) == {"port": 8080}

    def test_unsupported_format(self, tmp_path) -> None:
        """Test other extensions are rejected."""
        path = tmp_path / "config.ini"
        path.write_text("port=8080\n")
        with pytest.raises(ValueError, match="Unsupported file format"):
            load_config_from_file(path)

    def test_missing_file(self, tmp_path) -> None:
        """Test missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    def test_env_style_keys(self, tmp_path) -> None:
        """Test environment variable names are accepted as keys."""
        path = tmp_path / "config.yaml"
        path.write_text("PORT: 8080\nAPI_KEY_HEADER: X-Key\nlog-level: debug\n")
        assert load_config_from_file(path) == {"port": 8080, "api_key_header": "X-Key", "log_level": "debug"}

    def test_unknown_setting(self, tmp_path) -> None:
        """Test keys that aren't settings are rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("listen: 8080\n")
        with pytest.raises(ValueError, match="Unknown setting"):
            load_config_from_file(path)

    def test_non_mapping(self, tmp_path) -> None:
        """Test a config file must hold a mapping."""
        path = tmp_path / "config.yaml"
        path.write_text("- 8080\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config_from_file(path)


class TestReadDocument:
    """Test the shared YAML/TOML/JSON reader."""

    def test_read_json(self, tmp_path) -> None:
        """Test JSON files are parsed."""
        path = tmp_path / "data.json"
        path.write_text('{"port": 8080}')
        assert read_document(path) == {"port": 8080}

    def test_invalid_json(self, tmp_path) -> None:
        """Test malformed JSON raises ValueError."""
        path = tmp_path / "data.json"
        path.write_text("{")
        with pytest.raises(ValueError, match="Invalid JSON"):
            read_document(path)

    def test_empty_yaml(self, tmp_path) -> None:
        """Test an empty YAML file reads as an empty mapping."""
        path = tmp_path / "data.yaml"
        path.write_text("")
        assert read_document(path) == {}


class TestConfigFromFile:
    """Test building IngressConfig from a settings file."""

    def test_from_file(self, tmp_path) -> None:
        """Test file settings are validated like environment settings."""
        path = tmp_path / "config.toml"
        path.write_text('PORT = 8080\nAPI_KEY_SECRET_LOCATION = "keys:token"\n')
        config = IngressConfig.from_file(path)
        assert config.port == 8080
        assert config.api_key_secret == "keys"
        assert config.api_key_secret_data_field == "token"

    def test_file_wins_over_environment(self, tmp_path) -> None:
        """Test file values take precedence over the environment."""
        path = tmp_path / "config.yaml"
        path.write_text("port: 8080\n")
        with patch.dict(os.environ, {"PORT": "9090", "HOSTS_ANNOTATION": "fromEnv"}):
            config = IngressConfig.from_file(path)
            assert config.port == 8080
            assert config.hosts_annotation == "fromEnv"

    def test_invalid_file_value(self, tmp_path) -> None:
        """Test invalid file values raise the usual validation error."""
        path = tmp_path / "config.yaml"
        path.write_text("port: 70000\n")
        with pytest.raises(ValidationError, match="PORT is an invalid port"):
            IngressConfig.from_file(path)

    def test_get_config_with_file(self, tmp_path) -> None:
        """Test get_config loads and caches a file configuration."""
        path = tmp_path / "config.yaml"
        path.write_text("log_level: ERROR\n")
        config = get_config(path)
        assert config.log_level == "error"
        assert get_config() is config
