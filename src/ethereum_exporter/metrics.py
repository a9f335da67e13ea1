"""Prometheus-backed gauge sink and exporter-level metrics."""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

from prometheus_client import CollectorRegistry, Gauge

GaugeKey = str | Sequence[str]

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


@runtime_checkable
class MetricsSink(Protocol):
    """Write-only gauge recorder consumed by the poll engine."""

    def set_gauge(self, key: GaugeKey, value: float) -> None: ...


def sanitize_metric_name(value: str) -> str:
    """Return ``value`` with characters Prometheus rejects replaced by underscores."""

    sanitized = _INVALID_NAME_CHARS.sub("_", value.strip())

    if not sanitized or sanitized[0].isdigit():
        sanitized = f"_{sanitized}"

    return sanitized


def flatten_key(key: GaugeKey) -> str:
    if isinstance(key, str):
        return key

    return ".".join(key)


@dataclass(slots=True)
class ExporterMetrics:
    up: Gauge
    connected: Gauge
    last_cycle_timestamp: Gauge


class PrometheusSink:
    """MetricsSink that registers one unlabelled gauge per key on first use.

    Gauge names are ``<prefix>_<key>`` with the key path joined by
    underscores. The latest value of every key is also kept in memory for
    the JSON display of ``/metrics``.
    """

    def __init__(
        self,
        prefix: str,
        *,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.prefix = sanitize_metric_name(prefix)
        self.registry = registry or CollectorRegistry()
        self._gauges: dict[str, Gauge] = {}
        self._values: dict[str, float] = {}
        self._updated: dict[str, float] = {}
        self._lock = threading.Lock()

    def metric_name(self, key: GaugeKey) -> str:
        path = key.split(".") if isinstance(key, str) else list(key)
        return "_".join(sanitize_metric_name(part) for part in [self.prefix, *path])

    def set_gauge(self, key: GaugeKey, value: float) -> None:
        flat_key = flatten_key(key)

        with self._lock:
            gauge = self._gauges.get(flat_key)

            if gauge is None:
                gauge = Gauge(
                    self.metric_name(key),
                    f"Latest value of '{flat_key}' reported by the ethereum exporter.",
                    registry=self.registry,
                )
                self._gauges[flat_key] = gauge

            gauge.set(float(value))
            self._values[flat_key] = float(value)
            self._updated[flat_key] = time.time()

    def snapshot(self) -> dict[str, dict[str, float]]:
        """Return ``{key: {"value": ..., "updated": ...}}`` for every recorded gauge."""

        with self._lock:
            return {
                key: {"value": value, "updated": self._updated[key]}
                for key, value in sorted(self._values.items())
            }


def create_exporter_metrics(registry: CollectorRegistry) -> ExporterMetrics:
    return ExporterMetrics(
        up=Gauge(
            "ethereum_exporter_up",
            "Indicates whether the exporter is available (1 for up, 0 for down).",
            registry=registry,
        ),
        connected=Gauge(
            "ethereum_exporter_connected",
            "Indicates whether the exporter has resolved the node's chain (1) or is disconnected (0).",
            registry=registry,
        ),
        last_cycle_timestamp=Gauge(
            "ethereum_exporter_last_cycle_timestamp_seconds",
            "Unix timestamp of the most recent gather cycle.",
            registry=registry,
        ),
    )


__all__ = [
    "ExporterMetrics",
    "GaugeKey",
    "MetricsSink",
    "PrometheusSink",
    "create_exporter_metrics",
    "flatten_key",
    "sanitize_metric_name",
]
