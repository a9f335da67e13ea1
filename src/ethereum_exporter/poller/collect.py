"""Gather cycle: concurrent RPC reads, derived metrics and gauge recording."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ..logging import build_log_extra, get_logger
from ..metrics import MetricsSink
from ..models import BlockSnapshot, PollResult
from ..reference import ReferenceClientProtocol
from ..rpc import RpcClientProtocol

LOGGER = get_logger(__name__)

GAUGE_PEERS = "peers"
GAUGE_BLOCK_NUMBER = "blockNumber"
GAUGE_BLOCK_TIME = "blocktime"
GAUGE_BLOCKS_BEHIND = "blocksbehind"
GAUGE_GAS_PRICE = "gasPrice"
GAUGE_HASH_RATE = "hashRate"
GAUGE_SYNCING = "syncing"
GAUGE_SYNCED = "synced"
GAUGE_TRANSACTIONS = "transactions"
GAUGE_GAS_LIMIT = "gasLimit"


async def gather_metrics(
    rpc: RpcClientProtocol,
    reference: ReferenceClientProtocol,
    *,
    last_block: BlockSnapshot | None,
) -> PollResult:
    """Run every read for one cycle and derive block time and blocks-behind.

    Reads are independent and issued concurrently; the block fetch waits for
    the block number. Failures are collected on the result, never raised.
    Nothing here mutates engine state or touches the sink, so a cycle
    cancelled while awaiting leaves no trace.
    """
    result = PollResult()

    calls: dict[str, tuple[Callable[..., Any], bool]] = {
        GAUGE_PEERS: (rpc.peer_count, True),
        GAUGE_BLOCK_NUMBER: (rpc.block_number, True),
        GAUGE_GAS_PRICE: (rpc.gas_price, True),
        GAUGE_HASH_RATE: (rpc.hash_rate, True),
        GAUGE_SYNCING: (rpc.sync_status, True),
        "reference": (reference.current_height, False),
    }

    outcomes = await asyncio.gather(
        *(asyncio.to_thread(call) for call, _node in calls.values()),
        return_exceptions=True,
    )

    values: dict[str, Any] = {}

    for (metric, (_call, node)), outcome in zip(calls.items(), outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome

        if isinstance(outcome, Exception):
            result.add_failure(metric, outcome, node=node)
            continue

        values[metric] = outcome

    result.peer_count = values.get(GAUGE_PEERS)
    result.block_number = values.get(GAUGE_BLOCK_NUMBER)
    result.gas_price = values.get(GAUGE_GAS_PRICE)
    result.hash_rate = values.get(GAUGE_HASH_RATE)
    result.reference_height = values.get("reference")

    if GAUGE_SYNCING in values:
        result.sync_progress = values[GAUGE_SYNCING]
        result.syncing = result.sync_progress is not None

    if result.block_number is not None:
        try:
            snapshot, decode_errors = await asyncio.to_thread(
                rpc.block_by_number, result.block_number
            )
        except Exception as exc:  # noqa: BLE001
            result.add_failure("block", exc)
        else:
            result.block = snapshot

            for error in decode_errors:
                result.add_failure(f"block.{error.field or 'unknown'}", error)
    else:
        LOGGER.debug(
            "Skipping block fetch because the block number is unavailable.",
            extra=build_log_extra(endpoint=rpc.endpoint),
        )

    derive_metrics(result, last_block)

    return result


def derive_metrics(result: PollResult, last_block: BlockSnapshot | None) -> PollResult:
    """Fill in ``block_time`` and ``blocks_behind`` from values already on ``result``."""

    block = result.block

    if (
        block is not None
        and block.timestamp is not None
        and last_block is not None
        and last_block.timestamp is not None
    ):
        result.block_time = (block.timestamp - last_block.timestamp).total_seconds()

    if result.block_number is not None and result.reference_height is not None:
        result.blocks_behind = result.reference_height - result.block_number

    return result


def _gauge_value(result: PollResult, metric: str, value: float | int) -> float | None:
    try:
        return float(value)
    except OverflowError as exc:
        result.add_failure(metric, exc)
        return None


def record_poll_result(sink: MetricsSink, result: PollResult, *, synced: bool) -> None:
    """Push every value the cycle obtained to the sink.

    All values are converted before the first gauge is written. One that
    does not fit a float is reported as a failure on ``result`` and skipped.
    """

    pending: dict[str, float | int] = {}

    if result.peer_count is not None:
        pending[GAUGE_PEERS] = result.peer_count

    if result.block_number is not None:
        pending[GAUGE_BLOCK_NUMBER] = result.block_number

    if result.gas_price is not None:
        pending[GAUGE_GAS_PRICE] = result.gas_price

    if result.hash_rate is not None:
        pending[GAUGE_HASH_RATE] = result.hash_rate

    if result.syncing is not None:
        pending[GAUGE_SYNCING] = 1.0 if result.syncing else 0.0

    if result.block is not None:
        if result.block.transaction_count is not None:
            pending[GAUGE_TRANSACTIONS] = result.block.transaction_count

        if result.block.gas_limit is not None:
            pending[GAUGE_GAS_LIMIT] = result.block.gas_limit

    if result.block_time is not None:
        pending[GAUGE_BLOCK_TIME] = result.block_time

    if result.blocks_behind is not None:
        pending[GAUGE_BLOCKS_BEHIND] = result.blocks_behind
        pending[GAUGE_SYNCED] = 1.0 if synced else 0.0

    converted = {metric: _gauge_value(result, metric, value) for metric, value in pending.items()}

    for metric, value in converted.items():
        if value is not None:
            sink.set_gauge(metric, value)


__all__ = [
    "GAUGE_BLOCKS_BEHIND",
    "GAUGE_BLOCK_NUMBER",
    "GAUGE_BLOCK_TIME",
    "GAUGE_GAS_PRICE",
    "GAUGE_HASH_RATE",
    "GAUGE_PEERS",
    "derive_metrics",
    "gather_metrics",
    "record_poll_result",
]
