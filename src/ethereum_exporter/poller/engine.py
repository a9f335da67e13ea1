"""Connection state machine and tick loop for the monitored node."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..config import ExporterConfig
from ..exceptions import TransportError
from ..logging import build_log_extra, get_logger, log_duration
from ..metrics import ExporterMetrics, MetricsSink
from ..models import BlockSnapshot, NodeIdentity, PollResult, SyncState
from ..reference import ReferenceClient, ReferenceClientProtocol, resolve_reference_url
from ..rpc import RpcClient, RpcClientProtocol
from ..settings import AppSettings, get_settings
from .collect import gather_metrics, record_poll_result
from .intervals import TickSchedule, determine_poll_interval_seconds

LOGGER = get_logger(__name__)

ReferenceFactory = Callable[[str], ReferenceClientProtocol]


def node_went_away(result: PollResult) -> bool:
    """True when a call to the node itself failed at the transport level."""

    return any(
        failure.node and isinstance(failure.error, TransportError)
        for failure in result.failures
    )


class PollEngine:
    """Drives the Disconnected/Connected state machine on a fixed cadence.

    Only the poll task writes ``identity``, ``last_block`` and the
    connected/synced flags. All writes for a cycle happen after its last
    await, so cancelling a cycle never leaves them half updated.
    """

    def __init__(
        self,
        config: ExporterConfig,
        sink: MetricsSink,
        *,
        rpc: RpcClientProtocol | None = None,
        reference_factory: ReferenceFactory | None = None,
        exporter_metrics: ExporterMetrics | None = None,
        settings: AppSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._settings = settings or get_settings()
        self._sink = sink
        self._exporter_metrics = exporter_metrics
        self._clock = clock

        timeout_seconds = self._settings.poller.rpc_request_timeout_seconds

        self._rpc = rpc or RpcClient(config.endpoint, timeout_seconds=timeout_seconds)
        self._reference_factory = reference_factory or (
            lambda url: ReferenceClient(url, timeout_seconds=timeout_seconds)
        )

        self.interval_seconds = determine_poll_interval_seconds(config.poll_interval)

        self._identity: NodeIdentity | None = None
        self._reference: ReferenceClientProtocol | None = None
        self._last_block: BlockSnapshot | None = None
        self._connected = False
        self._synced = False
        self._last_result: PollResult | None = None
        self.last_cycle_at: float | None = None
        self.last_success_at: float | None = None

        self._tick_lock = asyncio.Lock()
        self._stopping = asyncio.Event()

    @property
    def identity(self) -> NodeIdentity | None:
        return self._identity

    @property
    def chain(self) -> str | None:
        return self._identity.chain if self._identity is not None else None

    @property
    def last_block(self) -> BlockSnapshot | None:
        return self._last_block

    @property
    def last_result(self) -> PollResult | None:
        return self._last_result

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def synced(self) -> bool:
        return self._synced

    @property
    def state(self) -> SyncState:
        return SyncState.derive(connected=self._connected, synced=self._synced)

    def _log_extra(self, **additional: object) -> dict[str, object]:
        return build_log_extra(
            endpoint=self._config.endpoint,
            chain=self.chain,
            state=self.state.value,
            additional=additional or None,
        )

    async def tick(self) -> PollResult | None:
        """Evaluate one cycle. Returns the gather result while Connected."""

        async with self._tick_lock:
            if not self._connected:
                await self._resolve_identity()
                return None

            return await self._gather()

    async def _resolve_identity(self) -> None:
        try:
            chain = await asyncio.to_thread(self._rpc.chain)
            reference_url = resolve_reference_url(
                chain,
                api_key=self._settings.reference.etherscan_api_key,
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Failed to connect to node: %s",
                exc,
                extra=self._log_extra(**getattr(exc, "context", {})),
            )
            return

        reference = self._reference_factory(reference_url)

        self._identity = NodeIdentity(chain=chain, reference_url=reference_url)
        self._reference = reference
        self._connected = True
        self._set_connected_gauge(True)

        LOGGER.info(
            "Using chain %s. Chain connected, gathering metrics.",
            chain,
            extra=self._log_extra(),
        )

    async def _gather(self) -> PollResult:
        assert self._reference is not None

        result = await gather_metrics(self._rpc, self._reference, last_block=self._last_block)

        # Commit section: no awaits past this point.
        if result.blocks_behind is not None:
            self._synced = result.blocks_behind == 0

        record_poll_result(self._sink, result, synced=self._synced)

        if result.block is not None:
            self._last_block = result.block

        self._last_result = result
        self.last_cycle_at = time.time()

        if self._exporter_metrics is not None:
            self._exporter_metrics.last_cycle_timestamp.set(self.last_cycle_at)

        if result.ok:
            self.last_success_at = self.last_cycle_at
            return result

        for failure in result.failures:
            LOGGER.warning(
                "Export error for %s: %s",
                failure.metric,
                failure.error,
                extra=self._log_extra(metric=failure.metric),
            )

        if node_went_away(result):
            LOGGER.warning("Node may be down; re-resolving chain on next tick.", extra=self._log_extra())
            self._disconnect()

        return result

    def _disconnect(self) -> None:
        self._identity = None
        self._reference = None
        self._connected = False
        self._synced = False
        self._set_connected_gauge(False)

    def _set_connected_gauge(self, connected: bool) -> None:
        if self._exporter_metrics is not None:
            self._exporter_metrics.connected.set(1 if connected else 0)

    def stop(self) -> None:
        """Stop scheduling further ticks; an in-flight tick is allowed to finish."""

        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def _wait(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds. Returns True when a stop was requested."""

        if delay <= 0:
            return self._stopping.is_set()

        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False

        return True

    async def run(self) -> None:
        """Tick at nominal times ``start + n * interval`` until stopped or cancelled."""

        schedule = TickSchedule(self.interval_seconds, clock=self._clock)

        LOGGER.info(
            "Polling %s every %s seconds.",
            self._config.endpoint,
            self.interval_seconds,
            extra=self._log_extra(),
        )

        try:
            while True:
                if await self._wait(schedule.delay()):
                    break

                skipped_before = schedule.skipped

                try:
                    with log_duration(
                        LOGGER,
                        "poll_tick",
                        level=logging.DEBUG,
                        extra=self._log_extra(),
                    ):
                        await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception(
                        "Unexpected error while polling %s.",
                        self._config.endpoint,
                        exc_info=exc,
                        extra=self._log_extra(),
                    )

                schedule.advance()

                if schedule.skipped > skipped_before:
                    LOGGER.warning(
                        "Poll cycle overran the interval; skipped %d tick(s).",
                        schedule.skipped - skipped_before,
                        extra=self._log_extra(),
                    )
        except asyncio.CancelledError:
            LOGGER.debug("Polling task cancelled.", extra=self._log_extra())
            raise
        finally:
            LOGGER.info("Monitor shutting down", extra=self._log_extra())

    def close(self) -> None:
        """Release HTTP sessions held by the node and reference clients."""

        for client in (self._rpc, self._reference):
            close = getattr(client, "close", None)

            if close is not None:
                close()


__all__ = ["PollEngine", "node_went_away"]
