"""Utilities for poll intervals and drift-free tick scheduling."""

from __future__ import annotations

import math
import re
import time
from typing import Callable

from ..logging import get_logger
from ..settings import get_settings

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhSMH]?)\s*$")
FALLBACK_POLL_INTERVAL_SECONDS = 5


def parse_duration_to_seconds(value: str) -> int | None:
    """Parse a duration string (e.g., '5s', '1m', '1h') to seconds.

    Supports formats: 'N', 'Ns', 'Nm', 'Nh' where N is a non-negative integer.
    Case-insensitive for unit letters.

    Args:
        value: Duration string to parse.

    Returns:
        Duration in seconds, or None if parsing fails.
    """
    match = DURATION_PATTERN.match(value)

    if not match:
        return None

    amount = int(match.group(1))

    unit = match.group(2).lower() or "s"

    unit_multipliers = {"s": 1, "m": 60, "h": 3600}

    return amount * unit_multipliers[unit]


def determine_poll_interval_seconds(raw_value: str | None) -> int:
    """Resolve a configured poll interval, falling back to the default on bad input."""
    value = raw_value or SETTINGS.poller.default_interval

    resolved_seconds = parse_duration_to_seconds(value)

    if resolved_seconds is None or resolved_seconds <= 0:
        LOGGER.warning(
            "Invalid poll interval '%s'. Falling back to %s seconds.",
            value,
            DEFAULT_POLL_INTERVAL_SECONDS,
        )

        return DEFAULT_POLL_INTERVAL_SECONDS

    return resolved_seconds


class TickSchedule:
    """Nominal tick times anchored at the first tick.

    Tick ``n`` is due at ``start + n * interval`` regardless of how long the
    previous tick took. When a tick overruns one or more nominal slots, those
    slots are skipped rather than fired back to back.
    """

    def __init__(
        self,
        interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive.")

        self.interval_seconds = interval_seconds
        self._clock = clock
        self._start: float | None = None
        self._index = 0
        self.skipped = 0

    @property
    def next_due(self) -> float:
        if self._start is None:
            self._start = self._clock()

        return self._start + self._index * self.interval_seconds

    def delay(self) -> float:
        """Seconds to wait before the next nominal tick (zero when already due)."""

        return max(self.next_due - self._clock(), 0.0)

    def advance(self) -> None:
        """Move to the next nominal tick that is still in the future."""

        due = self.next_due
        now = self._clock()
        self._index += 1

        if now >= due + self.interval_seconds:
            behind = math.floor((now - due) / self.interval_seconds)
            self._index = behind + self._index
            self.skipped += behind


DEFAULT_POLL_INTERVAL_SECONDS = (
    parse_duration_to_seconds(SETTINGS.poller.default_interval) or FALLBACK_POLL_INTERVAL_SECONDS
)


__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "TickSchedule",
    "determine_poll_interval_seconds",
    "parse_duration_to_seconds",
]
