"""Best-effort, bounded-retry registration with the Consul service directory."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

import requests

from .config import ExporterConfig
from .exceptions import RegistrationError
from .logging import build_log_extra, get_logger
from .models import RegistrationAttempt
from .rpc import MAX_ERROR_BODY_LENGTH, create_http_session

LOGGER = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY_SECONDS = 60.0
HEALTH_CHECK_PATH = "/synced"
HEALTH_CHECK_INTERVAL = "1s"
HEALTH_CHECK_TIMEOUT = "5s"
SERVICE_TAGS = ("pool", "parity")

ChainProvider = Callable[[], str | None]


@dataclass(frozen=True, slots=True)
class HealthCheck:
    url: str
    interval: str = HEALTH_CHECK_INTERVAL
    timeout: str = HEALTH_CHECK_TIMEOUT


@dataclass(frozen=True, slots=True)
class ServiceRegistration:
    id: str
    name: str
    port: int
    address: str
    health_check: HealthCheck
    tags: list[str] = field(default_factory=list)

    def as_consul_payload(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "Name": self.name,
            "Port": self.port,
            "Address": self.address,
            "Tags": list(self.tags),
            "Check": {
                "HTTP": self.health_check.url,
                "Interval": self.health_check.interval,
                "Timeout": self.health_check.timeout,
            },
        }


def build_registration(config: ExporterConfig, chain: str | None) -> ServiceRegistration:
    """Build the directory record for this exporter.

    Raises:
        RegistrationError: If the chain has not been resolved yet; the
            service identifier cannot be built without it.
    """
    if not chain:
        raise RegistrationError(
            "Chain not resolved yet; cannot build service identifier.",
            directory=config.consul_address,
        )

    address = config.http_address

    return ServiceRegistration(
        id=f"parity-{chain}-{config.consul_service_name}",
        name=config.consul_service_name,
        port=config.bind_port,
        address=address,
        tags=[*SERVICE_TAGS, chain],
        health_check=HealthCheck(url=f"{address}{HEALTH_CHECK_PATH}"),
    )


@runtime_checkable
class ServiceRegistrar(Protocol):
    def register(self, registration: ServiceRegistration) -> None: ...


class ConsulRegistrar:
    """Registers services through the local Consul agent HTTP API."""

    def __init__(
        self,
        address: str,
        *,
        timeout_seconds: float,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._address = address.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._token = token
        self._session = session or create_http_session(pool_size=1)

    @property
    def address(self) -> str:
        return self._address

    def close(self) -> None:
        self._session.close()

    def register(self, registration: ServiceRegistration) -> None:
        url = f"{self._address}/v1/agent/service/register"
        headers = {"X-Consul-Token": self._token} if self._token else None

        try:
            response = self._session.put(
                url,
                json=registration.as_consul_payload(),
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise RegistrationError(
                f"Failed to connect to consul: {exc}",
                service_id=registration.id,
                directory=self._address,
            ) from exc

        if response.status_code != 200:
            raise RegistrationError(
                f"Consul rejected registration with status {response.status_code}.",
                service_id=registration.id,
                directory=self._address,
                context={"body": response.text[:MAX_ERROR_BODY_LENGTH]},
            )


class RegistrationLoop:
    """Tries to register up to ``max_attempts`` times, ``retry_delay`` apart.

    Registration is fire-and-forget: after the first success the loop ends
    and never re-registers, even if the directory later drops the entry.
    After the last failed attempt the loop gives up for good.
    """

    def __init__(
        self,
        config: ExporterConfig,
        registrar: ServiceRegistrar,
        chain_provider: ChainProvider,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

        self._config = config
        self._registrar = registrar
        self._chain_provider = chain_provider
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.attempts: list[RegistrationAttempt] = []
        self.registered = False

    @property
    def registrar(self) -> ServiceRegistrar:
        return self._registrar

    async def _attempt_once(self) -> ServiceRegistration:
        registration = build_registration(self._config, self._chain_provider())
        await asyncio.to_thread(self._registrar.register, registration)
        return registration

    async def run(self) -> bool:
        """Run the bounded retry loop. Returns True if registration succeeded."""

        for attempt_number in range(1, self.max_attempts + 1):
            last_attempt = attempt_number == self.max_attempts

            try:
                registration = await self._attempt_once()
            except Exception as exc:  # noqa: BLE001
                next_delay = None if last_attempt else self.retry_delay

                self.attempts.append(
                    RegistrationAttempt(
                        attempt_number=attempt_number,
                        outcome="failed",
                        next_retry_delay=next_delay,
                        error=exc,
                    )
                )

                LOGGER.warning(
                    "Failed to register in consul: %s",
                    exc,
                    extra=build_log_extra(
                        chain=self._chain_provider(),
                        attempt=attempt_number,
                        additional={"max_attempts": self.max_attempts},
                    ),
                )

                if next_delay is not None:
                    await self._sleep(next_delay)

                continue

            self.attempts.append(
                RegistrationAttempt(
                    attempt_number=attempt_number,
                    outcome="registered",
                    next_retry_delay=None,
                )
            )
            self.registered = True

            LOGGER.info(
                "Service registered in consul as %s.",
                registration.id,
                extra=build_log_extra(chain=self._chain_provider(), attempt=attempt_number),
            )

            return True

        LOGGER.warning(
            "Stop trying to register on consul after %d attempt(s).",
            self.max_attempts,
            extra=build_log_extra(additional={"max_attempts": self.max_attempts}),
        )

        return False


__all__ = [
    "ConsulRegistrar",
    "HealthCheck",
    "RegistrationLoop",
    "ServiceRegistrar",
    "ServiceRegistration",
    "build_registration",
]
