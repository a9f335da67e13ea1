"""Polling package for Ethereum node metrics."""

from .collect import derive_metrics, gather_metrics, record_poll_result
from .engine import PollEngine, node_went_away
from .intervals import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    TickSchedule,
    determine_poll_interval_seconds,
    parse_duration_to_seconds,
)

__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "PollEngine",
    "TickSchedule",
    "derive_metrics",
    "determine_poll_interval_seconds",
    "gather_metrics",
    "node_went_away",
    "parse_duration_to_seconds",
    "record_poll_result",
]
