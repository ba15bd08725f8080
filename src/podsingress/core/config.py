"""Runtime configuration read from environment variables.

The variable names are shared with the rest of the ingress deployment, so
they carry no prefix:

- API_KEY_SECRET_LOCATION: ``{secret name}:{data field}`` of API key secrets
- HOSTS_ANNOTATION / PATHS_ANNOTATION: pod annotations declaring routes
- PORT: port nginx listens on
- ROUTABLE_LABEL_SELECTOR: label selector picking routable pods
- API_KEY_HEADER: request header compared against the API key
- LOG_LEVEL: debug, info, warning or error

The same settings can be written to a YAML, TOML or JSON file and passed to
the CLI with ``--config``; file values win over the environment.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podsingress.core.validation import is_qualified_name, parse_label_selector

DEFAULT_API_KEY_SECRET = "routing"
DEFAULT_API_KEY_SECRET_DATA_FIELD = "api-key"
DEFAULT_API_KEY_SECRET_LOCATION = f"{DEFAULT_API_KEY_SECRET}:{DEFAULT_API_KEY_SECRET_DATA_FIELD}"
DEFAULT_HOSTS_ANNOTATION = "routingHosts"
DEFAULT_PATHS_ANNOTATION = "routingPaths"
DEFAULT_PORT = 80
DEFAULT_ROUTABLE_LABEL_SELECTOR = "routable=true"
DEFAULT_API_KEY_HEADER = "X-Ingress-API-Key"

ENV_API_KEY_SECRET_LOCATION = "API_KEY_SECRET_LOCATION"
ENV_HOSTS_ANNOTATION = "HOSTS_ANNOTATION"
ENV_PATHS_ANNOTATION = "PATHS_ANNOTATION"
ENV_PORT = "PORT"
ENV_ROUTABLE_LABEL_SELECTOR = "ROUTABLE_LABEL_SELECTOR"

DEFAULT_LOG_LEVEL = "warning"

_LOG_LEVELS = ("debug", "info", "warning", "error")
_DOCUMENT_SUFFIXES = (".yaml", ".yml", ".toml", ".json")


def read_document(path: str | Path) -> Any:
    """Parse a YAML, TOML or JSON file, chosen by its suffix.

    Shared by configuration files and cache snapshots.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file can't be decoded or parsed, or has an unknown suffix
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.suffix not in _DOCUMENT_SUFFIXES:
        raise ValueError(f"Unsupported file format: {path.suffix}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Encoding error in {path}: {e}") from e

    try:
        if path.suffix == ".toml":
            return tomllib.loads(content)
        if path.suffix == ".json":
            return json.loads(content) if content.strip() else {}
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Read ingress settings from a YAML, TOML or JSON file.

    Keys may be written as field names (``port``) or as the environment
    variable names (``PORT``, ``API_KEY_HEADER``).

    Returns:
        Settings keyed by IngressConfig field name

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file can't be parsed or names an unknown setting
    """
    data = read_document(path)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    settings: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).lower().replace("-", "_")
        if name not in IngressConfig.model_fields:
            raise ValueError(f"Unknown setting in {path}: {key}")
        settings[name] = value
    return settings


class IngressConfig(BaseSettings):
    """Validated ingress configuration.

    Only ``port``, ``api_key_header`` and the secret data field reach the
    generated nginx configuration; the annotation names and label selector
    describe how the cache was populated.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key_secret_location: str = Field(
        default=DEFAULT_API_KEY_SECRET_LOCATION,
        description="Secret name and data field of API key secrets, as name:field.",
    )
    hosts_annotation: str = Field(
        default=DEFAULT_HOSTS_ANNOTATION,
        description="Pod annotation listing the hosts a pod serves.",
    )
    paths_annotation: str = Field(
        default=DEFAULT_PATHS_ANNOTATION,
        description="Pod annotation listing the paths a pod serves.",
    )
    port: int = Field(
        default=DEFAULT_PORT,
        description="Port nginx listens on.",
    )
    routable_label_selector: str = Field(
        default=DEFAULT_ROUTABLE_LABEL_SELECTOR,
        description="Label selector identifying routable pods.",
    )
    api_key_header: str = Field(
        default=DEFAULT_API_KEY_HEADER,
        description="Request header that must carry the namespace API key.",
    )
    log_level: str = Field(
        default=DEFAULT_LOG_LEVEL,
        description="Log level (debug, info, warning, error).",
    )

    @field_validator("api_key_secret_location", mode="before")
    @classmethod
    def _validate_secret_location(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_API_KEY_SECRET_LOCATION
        parts = str(value).split(":")
        if len(parts) != 2 or not all(parts):
            raise ValueError(
                f"{ENV_API_KEY_SECRET_LOCATION} is not in the format of "
                "{API_KEY_SECRET_NAME}:{API_KEY_SECRET_DATA_FIELD_NAME}"
            )
        return str(value)

    @field_validator("hosts_annotation", "paths_annotation", mode="before")
    @classmethod
    def _validate_annotation(cls, value: Any, info: ValidationInfo) -> str:
        env_name = ENV_HOSTS_ANNOTATION if info.field_name == "hosts_annotation" else ENV_PATHS_ANNOTATION
        if value is None or value == "":
            return DEFAULT_HOSTS_ANNOTATION if info.field_name == "hosts_annotation" else DEFAULT_PATHS_ANNOTATION
        if not is_qualified_name(str(value).lower()):
            raise ValueError(f"{env_name} has an invalid annotation name: {value}")
        return str(value)

    @field_validator("port", mode="before")
    @classmethod
    def _validate_port(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_PORT
        try:
            port = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{ENV_PORT} is an invalid port: {value}") from None
        if not 0 < port < 65536:
            raise ValueError(f"{ENV_PORT} is an invalid port: {value}")
        return port

    @field_validator("routable_label_selector", mode="before")
    @classmethod
    def _validate_selector(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_ROUTABLE_LABEL_SELECTOR
        try:
            parse_label_selector(str(value))
        except ValueError:
            raise ValueError(
                f"{ENV_ROUTABLE_LABEL_SELECTOR} has an invalid label selector: {value}"
            ) from None
        return str(value)

    @field_validator("api_key_header")
    @classmethod
    def _validate_header(cls, value: str) -> str:
        if not value or not all(c.isalnum() or c in "-_" for c in value):
            raise ValueError(f"Invalid API key header name: {value!r}")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_LOG_LEVEL
        value = str(value).lower()
        if value not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return value

    @classmethod
    def from_file(cls, path: str | Path) -> IngressConfig:
        """Build a configuration from a settings file.

        Settings in the file take precedence over the environment.
        """
        return cls(**load_config_from_file(path))

    @property
    def api_key_secret(self) -> str:
        """Name of the secret holding the API key."""
        return self.api_key_secret_location.split(":")[0]

    @property
    def api_key_secret_data_field(self) -> str:
        """Data field of the secret holding the API key."""
        return self.api_key_secret_location.split(":")[1]

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a flat dictionary for display."""
        return {
            "api_key_secret": self.api_key_secret,
            "api_key_secret_data_field": self.api_key_secret_data_field,
            "hosts_annotation": self.hosts_annotation,
            "paths_annotation": self.paths_annotation,
            "port": self.port,
            "routable_label_selector": self.routable_label_selector,
            "api_key_header": self.api_key_header,
            "log_level": self.log_level,
        }


_config: IngressConfig | None = None


def get_config(config_file: str | Path | None = None) -> IngressConfig:
    """Get the global configuration instance.

    Created on first use, from ``config_file`` when given and from the
    environment otherwise, then cached for the lifetime of the process.
    Call clear_config() first to reload (e.g., in tests).

    Raises:
        pydantic.ValidationError: If a setting is invalid.
        FileNotFoundError, ValueError: If ``config_file`` can't be read.
    """
    global _config
    if _config is None:
        _config = IngressConfig.from_file(config_file) if config_file else IngressConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration."""
    global _config
    _config = None
