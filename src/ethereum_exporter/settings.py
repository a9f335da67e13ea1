"""Process-level knobs read from the environment (and an optional ``.env``).

These cover concerns that sit outside the exporter's ``config.toml``:
log output, request timeouts, registration retries, and API keys.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv

DEFAULT_ENV_PATH = Path.cwd().joinpath(".env").resolve()

load_dotenv(DEFAULT_ENV_PATH)

_T = TypeVar("_T")

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def _parse_or(value: str | None, default: _T, parse: Callable[[str], _T]) -> _T:
    if value is None:
        return default
    try:
        return parse(value)
    except ValueError:
        return default


def _as_int(value: str | None, default: int) -> int:
    return _parse_or(value, default, int)


def _as_float(value: str | None, default: float) -> float:
    return _parse_or(value, default, float)


def _to_bool(raw: str) -> bool:
    word = raw.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(raw)


def _as_bool(value: str | None, default: bool) -> bool:
    """Accept the usual on/off spellings; anything else keeps ``default``."""

    return _parse_or(value, default, _to_bool)


@dataclass(slots=True)
class LoggingSettings:
    level: str
    format: str
    color_enabled: bool


@dataclass(slots=True)
class PollerSettings:
    default_interval: str
    rpc_request_timeout_seconds: float
    shutdown_timeout_seconds: float


@dataclass(slots=True)
class RegistrationSettings:
    max_attempts: int
    retry_delay: str
    consul_token: str | None


@dataclass(slots=True)
class ReferenceSettings:
    etherscan_api_key: str | None


@dataclass(slots=True)
class ConfigSettings:
    config_path_env: str | None
    default_config_filename: str

    def resolve_config_path(self) -> Path:
        """Where ``config.toml`` is expected; a directory override gets the default filename."""

        if not self.config_path_env:
            return (Path.cwd() / self.default_config_filename).resolve()

        target = Path(self.config_path_env).expanduser().resolve()
        return target / self.default_config_filename if target.is_dir() else target

    @property
    def explicit(self) -> bool:
        return bool(self.config_path_env)


@dataclass(slots=True)
class AppSettings:
    logging: LoggingSettings
    poller: PollerSettings
    registration: RegistrationSettings
    reference: ReferenceSettings
    config: ConfigSettings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    env = os.environ

    return AppSettings(
        logging=LoggingSettings(
            level=env.get("LOG_LEVEL", "INFO").upper(),
            format=env.get("LOG_FORMAT", "text").lower(),
            color_enabled=_as_bool(env.get("LOG_COLOR_ENABLED"), True),
        ),
        poller=PollerSettings(
            default_interval=env.get("POLL_INTERVAL", "5s"),
            rpc_request_timeout_seconds=_as_float(env.get("RPC_REQUEST_TIMEOUT_SECONDS"), 10.0),
            shutdown_timeout_seconds=_as_float(env.get("SHUTDOWN_TIMEOUT_SECONDS"), 5.0),
        ),
        registration=RegistrationSettings(
            max_attempts=_as_int(env.get("REGISTRATION_MAX_ATTEMPTS"), 5),
            retry_delay=env.get("REGISTRATION_RETRY_DELAY", "1m"),
            consul_token=env.get("CONSUL_HTTP_TOKEN") or None,
        ),
        reference=ReferenceSettings(etherscan_api_key=env.get("ETHERSCAN_API_KEY") or None),
        config=ConfigSettings(
            config_path_env=env.get("ETHEREUM_EXPORTER_CONFIG_PATH"),
            default_config_filename="config.toml",
        ),
    )


def reset_settings_cache() -> None:
    """Forget the cached settings; the next call re-reads the environment."""

    get_settings.cache_clear()


__all__ = ["AppSettings", "get_settings", "reset_settings_cache"]
