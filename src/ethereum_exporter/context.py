"""Runtime dependency container wiring config, metrics, the poll engine and registration."""

from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry

from .config import ExporterConfig
from .metrics import ExporterMetrics, PrometheusSink, create_exporter_metrics
from .poller.engine import PollEngine
from .poller.intervals import parse_duration_to_seconds
from .registration import DEFAULT_RETRY_DELAY_SECONDS, ConsulRegistrar, RegistrationLoop
from .settings import AppSettings, get_settings


@dataclass(slots=True)
class ApplicationContext:
    """Bundle of services required while the exporter is running."""

    settings: AppSettings

    config: ExporterConfig

    registry: CollectorRegistry

    sink: PrometheusSink

    exporter_metrics: ExporterMetrics

    engine: PollEngine

    registration: RegistrationLoop | None

    def close(self) -> None:
        """Release the HTTP sessions owned by the engine and the registrar."""

        self.engine.close()

        if self.registration is not None:
            close = getattr(self.registration.registrar, "close", None)

            if close is not None:
                close()


def registration_retry_delay_seconds(settings: AppSettings) -> float:
    resolved = parse_duration_to_seconds(settings.registration.retry_delay)

    if resolved is None:
        return DEFAULT_RETRY_DELAY_SECONDS

    return float(resolved)


def create_context(
    config: ExporterConfig,
    *,
    settings: AppSettings | None = None,
    registry: CollectorRegistry | None = None,
) -> ApplicationContext:
    """Build the default object graph for ``config``."""

    resolved_settings = settings or get_settings()
    resolved_registry = registry or CollectorRegistry()

    sink = PrometheusSink(config.node_name, registry=resolved_registry)
    exporter_metrics = create_exporter_metrics(resolved_registry)

    engine = PollEngine(
        config,
        sink,
        exporter_metrics=exporter_metrics,
        settings=resolved_settings,
    )

    registration: RegistrationLoop | None = None

    if config.registration_enabled:
        registrar = ConsulRegistrar(
            config.consul_address,
            timeout_seconds=resolved_settings.poller.rpc_request_timeout_seconds,
            token=resolved_settings.registration.consul_token,
        )
        registration = RegistrationLoop(
            config,
            registrar,
            lambda: engine.chain,
            max_attempts=max(resolved_settings.registration.max_attempts, 1),
            retry_delay=registration_retry_delay_seconds(resolved_settings),
        )

    return ApplicationContext(
        settings=resolved_settings,
        config=config,
        registry=resolved_registry,
        sink=sink,
        exporter_metrics=exporter_metrics,
        engine=engine,
        registration=registration,
    )


__all__ = ["ApplicationContext", "create_context", "registration_retry_delay_seconds"]
