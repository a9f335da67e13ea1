"""Logging setup and helpers for attaching structured context to records."""

from __future__ import annotations

import json
import logging
import logging.config
from contextlib import contextmanager
from time import monotonic
from typing import TYPE_CHECKING, Any, Dict, Iterator

if TYPE_CHECKING:
    from .settings import AppSettings

_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "color_message",
}

LEVEL_COLORS = {
    "DEBUG": "\033[90m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
TIMESTAMP_COLOR = "\033[36m"
RESET = "\033[0m"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def extract_log_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the attributes attached to ``record`` through ``extra``."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
    }


def build_log_extra(
    *,
    endpoint: str | None = None,
    chain: str | None = None,
    state: str | None = None,
    attempt: int | None = None,
    elapsed: float | None = None,
    additional: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Assemble the ``extra`` mapping for a log call, skipping unset fields."""

    fields: Dict[str, Any] = {
        "endpoint": endpoint,
        # empty until the node has reported its chain
        "chain": chain or None,
        "state": state,
        "attempt": attempt,
        "elapsed_seconds": None if elapsed is None else round(elapsed, 3),
    }
    extra = {key: value for key, value in fields.items() if value is not None}
    extra.update(additional or {})
    return extra


@contextmanager
def log_duration(
    logger: logging.Logger,
    message: str,
    *,
    level: int = logging.DEBUG,
    extra: Dict[str, Any] | None = None,
) -> Iterator[None]:
    """Log ``message`` with the elapsed time once the block exits."""

    start = monotonic()
    try:
        yield
    finally:
        logger.log(
            level,
            message,
            extra={**(extra or {}), "elapsed_seconds": round(monotonic() - start, 3)},
        )


def resolve_color_message(record: logging.LogRecord, color_message: str | None) -> str | None:
    """Interpolate uvicorn's ``color_message`` with the record arguments."""

    if not color_message or not record.args:
        return color_message

    try:
        return color_message % record.args
    except (TypeError, ValueError):
        return color_message


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` attributes become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        if record.stack_info:
            payload["stack_info"] = record.stack_info

        payload.update(extract_log_context(record))

        return json.dumps(payload, default=str)


class StructuredTextFormatter(logging.Formatter):
    """Human readable lines with ``key=value`` context appended after a pipe."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        *,
        color_enabled: bool = True,
    ) -> None:
        super().__init__(fmt, datefmt, style)
        self.color_enabled = color_enabled

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        timestamp = super().formatTime(record, datefmt)

        if not self.color_enabled:
            return timestamp

        return f"{TIMESTAMP_COLOR}{timestamp}{RESET}"

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        color = LEVEL_COLORS.get(original_levelname, "")

        if self.color_enabled and color:
            record.levelname = f"{color}{original_levelname}{RESET}"

        try:
            line = super().format(record)
        finally:
            record.levelname = original_levelname

        if self.color_enabled:
            colored = resolve_color_message(record, getattr(record, "color_message", None))

            if colored:
                line = line.replace(record.getMessage(), colored, 1)

        context = extract_log_context(record)

        if not context:
            return line

        rendered = " ".join(f"{key}={context[key]}" for key in sorted(context))
        return f"{line} | {rendered}"


def configure_logging(settings: AppSettings) -> None:
    """Install the root handler and route uvicorn's loggers through it."""

    level = settings.logging.level

    if level not in logging.getLevelNamesMapping():
        level = "INFO"

    if settings.logging.format == "json":
        formatter: Dict[str, Any] = {"()": JsonFormatter, "datefmt": DATE_FORMAT}
    else:
        formatter = {
            "()": StructuredTextFormatter,
            "format": TEXT_FORMAT,
            "datefmt": DATE_FORMAT,
            "color_enabled": settings.logging.color_enabled,
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"standard": formatter},
            "handlers": {
                "default": {"class": "logging.StreamHandler", "formatter": "standard"},
            },
            "root": {"level": level, "handlers": ["default"]},
            "loggers": {
                name: {"handlers": ["default"], "level": level, "propagate": False}
                for name in UVICORN_LOGGERS
            },
        }
    )


__all__ = [
    "JsonFormatter",
    "StructuredTextFormatter",
    "build_log_extra",
    "configure_logging",
    "extract_log_context",
    "get_logger",
    "log_duration",
    "resolve_color_message",
]
