from __future__ import annotations

import ipaddress
import os
import socket
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

from .exceptions import ConfigError, ValidationError
from .settings import AppSettings, get_settings

CONFIG_SECTION = "exporter"
DEFAULT_ENDPOINT = "http://127.0.0.1:8545"
DEFAULT_NODE_NAME = "parity"
DEFAULT_BIND_ADDR = "127.0.0.1"
DEFAULT_BIND_PORT = 4546
DEFAULT_CONSUL_ADDRESS = "http://127.0.0.1:8500"
DEFAULT_CONSUL_SERVICE_NAME = "pool"


@dataclass(frozen=True, slots=True)
class ExporterConfig:
    endpoint: str

    node_name: str

    bind_addr: str

    bind_port: int

    poll_interval: str

    consul_address: str

    consul_service_name: str

    registration_enabled: bool = True

    @property
    def http_address(self) -> str:
        """Address advertised to the service directory."""

        return f"http://{self.bind_addr}:{self.bind_port}"


def default_node_name() -> str:
    try:
        hostname = socket.gethostname()
    except OSError:
        return DEFAULT_NODE_NAME

    return hostname or DEFAULT_NODE_NAME


def default_config(settings: AppSettings | None = None) -> ExporterConfig:
    resolved_settings = settings or get_settings()

    return ExporterConfig(
        endpoint=DEFAULT_ENDPOINT,
        node_name=default_node_name(),
        bind_addr=DEFAULT_BIND_ADDR,
        bind_port=DEFAULT_BIND_PORT,
        poll_interval=resolved_settings.poller.default_interval,
        consul_address=DEFAULT_CONSUL_ADDRESS,
        consul_service_name=DEFAULT_CONSUL_SERVICE_NAME,
    )


def resolve_config_path(settings: AppSettings | None = None) -> Path:
    resolved_settings = settings or get_settings()

    return resolved_settings.config.resolve_config_path()


def load_exporter_config(
    path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    settings: AppSettings | None = None,
) -> ExporterConfig:
    """Merge defaults, the TOML config file and explicit overrides (highest precedence).

    A missing file is only an error when its path was given explicitly,
    either as ``path`` or through ``ETHEREUM_EXPORTER_CONFIG_PATH``.
    """
    resolved_settings = settings or get_settings()

    config = default_config(resolved_settings)

    explicit = path is not None or resolved_settings.config.explicit
    config_path = path or resolve_config_path(resolved_settings)

    if config_path.exists() or explicit:
        file_values = _parse_exporter_section(_read_toml(config_path), config_path)
        config = merge_config(config, file_values)

    if overrides:
        config = merge_config(config, overrides)

    return validate_config(config)


def merge_config(config: ExporterConfig, values: Mapping[str, Any]) -> ExporterConfig:
    """Overwrite fields of ``config`` with every non-empty value in ``values``."""

    known = {field.name for field in fields(ExporterConfig)}
    updates: dict[str, Any] = {}

    for key, value in values.items():
        if key not in known:
            raise ValidationError(
                f"Unknown configuration key '{key}'.",
                config_section=CONFIG_SECTION,
                config_key=key,
            )

        if value is None or value == "":
            continue

        updates[key] = value

    return replace(config, **updates)


def validate_config(config: ExporterConfig) -> ExporterConfig:
    _require_url(config.endpoint, "endpoint")
    _require_url(config.consul_address, "consul_address")
    _require_non_empty_string(config.node_name, "node_name")
    _require_non_empty_string(config.consul_service_name, "consul_service_name")

    try:
        ipaddress.ip_address(config.bind_addr)
    except ValueError as exc:
        raise ValidationError(
            f"Bind address '{config.bind_addr}' is not a valid ip.",
            config_section=CONFIG_SECTION,
            config_key="bind_addr",
            expected_type="ip_address",
            value=config.bind_addr,
        ) from exc

    _coerce_port(config.bind_port, "bind_port")
    _validate_poll_interval(config.poll_interval, "poll_interval")

    return config


def _parse_exporter_section(data: dict[str, Any], path: Path) -> dict[str, Any]:
    """Extract the ``[exporter]`` table, mapping legacy key names onto field names."""

    section = data.get(CONFIG_SECTION, {})

    if not isinstance(section, dict):
        raise ConfigError(
            f"Configuration '{CONFIG_SECTION}' section must be a table.",
            config_file=str(path),
            config_section=CONFIG_SECTION,
        )

    aliases = {
        "bind": "bind_addr",
        "port": "bind_port",
        "nodename": "node_name",
        "consul": "consul_address",
        "service_name": "consul_service_name",
    }

    values: dict[str, Any] = {}

    for raw_key, value in section.items():
        key = aliases.get(raw_key, raw_key)

        if key == "bind_port":
            value = _coerce_port(value, key)
        elif key == "registration_enabled":
            value = _coerce_optional_bool(value, key)
        elif isinstance(value, str):
            value = value.strip()

        values[key] = value

    return values


def _read_toml(path: Path) -> dict[str, Any]:
    """Read and parse a TOML configuration file with environment variable expansion.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the TOML is invalid.
    """
    with path.open("r", encoding="utf-8") as file:
        raw_toml = file.read()

    expanded_toml = os.path.expandvars(raw_toml)

    try:
        return tomllib.loads(expanded_toml)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in configuration file: {exc}",
            config_file=str(path),
        ) from exc


def _require_non_empty_string(value: Any, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{location} must be a non-empty string.",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="string",
            value=value if value is None or isinstance(value, str) else type(value).__name__,
        )

    return value.strip()


def _require_url(value: Any, location: str) -> str:
    url = _require_non_empty_string(value, location)
    parsed = urlparse(url)

    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError(
            f"{location} must be an http(s) URL.",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="url",
            value=url,
        )

    return url


def _coerce_port(value: Any, location: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(
            f"{location} must be an integer, not a boolean.",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="integer",
            value=type(value).__name__,
        )

    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{location} must be an integer.",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="integer",
            value=value,
        ) from exc

    if not 0 < port < 65536:
        raise ValidationError(
            f"{location} must be between 1 and 65535.",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="port",
            value=port,
        )

    return port


def _validate_poll_interval(interval: str, location: str) -> str:
    """Validate that a string is a valid duration ('5', '5s', '1m', '1h')."""
    from .poller.intervals import parse_duration_to_seconds

    if not isinstance(interval, str) or not parse_duration_to_seconds(interval):
        raise ValidationError(
            f"{location} must be a positive duration (e.g., '5s', '1m'). Format: number optionally followed by unit (s/m/h).",
            config_section=CONFIG_SECTION,
            config_key=location,
            expected_type="duration_string",
            value=interval,
        )

    return interval


def _coerce_optional_bool(value: Any, location: str, *, default: bool = True) -> bool:
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        value_lower = value.lower().strip()
        if value_lower in ("true", "1", "yes", "on"):
            return True
        if value_lower in ("false", "0", "no", "off"):
            return False

    raise ValidationError(
        f"{location} must be a boolean (true/false).",
        config_section=CONFIG_SECTION,
        config_key=location,
        expected_type="boolean",
        value=value,
    )


__all__ = [
    "ExporterConfig",
    "default_config",
    "load_exporter_config",
    "merge_config",
    "resolve_config_path",
    "validate_config",
]
