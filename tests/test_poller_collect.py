from __future__ import annotations

import pytest

from ethereum_exporter.exceptions import DecodeError, RpcConnectionError, TransportError
from ethereum_exporter.models import BlockSnapshot, PollResult, SyncProgress
from ethereum_exporter.poller.collect import derive_metrics, gather_metrics, record_poll_result


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_gather_metrics_collects_every_value(make_rpc, make_reference) -> None:
    rpc = make_rpc(peer_count=7, block_number=16, gas_price=1_000, hash_rate=5)
    reference = make_reference(height=18)

    result = await gather_metrics(rpc, reference, last_block=None)

    assert result.ok
    assert result.peer_count == 7
    assert result.block_number == 16
    assert result.gas_price == 1_000
    assert result.hash_rate == 5
    assert result.syncing is False
    assert result.reference_height == 18
    assert result.blocks_behind == 2
    assert result.block is not None and result.block.number == 16
    assert rpc.block_requests == [16]


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_block_time_needs_two_fetches(make_rpc, make_reference, make_block) -> None:
    rpc = make_rpc(block_number=100)
    rpc.blocks[100] = (make_block(100, 1_000), [])
    reference = make_reference(height=100)

    first = await gather_metrics(rpc, reference, last_block=None)

    assert first.block_time is None

    rpc.values["block_number"] = 101
    rpc.blocks[101] = (make_block(101, 1_014), [])

    second = await gather_metrics(rpc, reference, last_block=first.block)

    assert second.block_time == 14.0


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_sync_progress_marks_syncing(make_rpc, make_reference) -> None:
    progress = SyncProgress(1, 10, 0, 0, 0)
    rpc = make_rpc(sync_status=progress)

    result = await gather_metrics(rpc, make_reference(), last_block=None)

    assert result.syncing is True
    assert result.sync_progress == progress


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_failures_are_collected_not_raised(make_rpc, make_reference) -> None:
    rpc = make_rpc(
        peer_count=RpcConnectionError("refused"),
        gas_price=DecodeError("bad hex", literal="0xzz"),
    )
    reference = make_reference(height=TransportError("reference down", status_code=500))

    result = await gather_metrics(rpc, reference, last_block=None)

    failures = {failure.metric: failure for failure in result.failures}

    assert set(failures) == {"peers", "gasPrice", "reference"}
    assert failures["peers"].node is True
    assert failures["reference"].node is False
    assert result.block_number == 16
    assert result.blocks_behind is None


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_block_fetch_skipped_without_block_number(make_rpc, make_reference) -> None:
    rpc = make_rpc(block_number=DecodeError("bad hex"))

    result = await gather_metrics(rpc, make_reference(), last_block=None)

    assert rpc.block_requests == []
    assert result.block is None
    assert [failure.metric for failure in result.failures] == ["blockNumber"]


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_block_field_errors_become_failures(make_rpc, make_reference, make_block) -> None:
    rpc = make_rpc(block_number=16)
    rpc.blocks[16] = (
        make_block(16, 1_000),
        [DecodeError("gasLimit field not found", field="gasLimit")],
    )

    result = await gather_metrics(rpc, make_reference(), last_block=None)

    assert [failure.metric for failure in result.failures] == ["block.gasLimit"]
    assert result.block is not None


@pytest.mark.anyio
@pytest.mark.parametrize("anyio_backend", ["asyncio"], indirect=True)
async def test_block_fetch_failure_is_recorded(make_rpc, make_reference) -> None:
    rpc = make_rpc(block_number=16)
    rpc.blocks[16] = RpcConnectionError("reset")

    result = await gather_metrics(rpc, make_reference(), last_block=None)

    assert [failure.metric for failure in result.failures] == ["block"]
    assert result.block is None


def test_derive_metrics_negative_blocks_behind() -> None:
    result = PollResult(block_number=20, reference_height=18)

    derive_metrics(result, None)

    assert result.blocks_behind == -2


def test_derive_metrics_ignores_missing_timestamps(make_block) -> None:
    block = make_block(2, 1_010)
    previous = BlockSnapshot(number=1, timestamp=None, transaction_count=0, gas_limit=0)

    result = PollResult(block_number=2, block=block)

    derive_metrics(result, previous)

    assert result.block_time is None


def test_record_poll_result_writes_only_present_values(sink, make_block) -> None:
    result = PollResult(
        peer_count=3,
        block_number=16,
        syncing=False,
        block=make_block(16, 1_000, transactions=4, gas_limit=10),
        block_time=15.0,
        reference_height=18,
        blocks_behind=2,
    )

    record_poll_result(sink, result, synced=False)

    assert sink.values == {
        "peers": 3.0,
        "blockNumber": 16.0,
        "syncing": 0.0,
        "transactions": 4.0,
        "gasLimit": 10.0,
        "blocktime": 15.0,
        "blocksbehind": 2.0,
        "synced": 0.0,
    }


def test_record_poll_result_leaves_synced_alone_without_blocks_behind(sink) -> None:
    record_poll_result(sink, PollResult(peer_count=1), synced=True)

    assert sink.values == {"peers": 1.0}


def test_record_poll_result_skips_values_too_large_for_a_gauge(sink, make_block) -> None:
    result = PollResult(
        block_number=16,
        block=make_block(16, 1_000, gas_limit=10**400),
        reference_height=16,
        blocks_behind=0,
    )

    record_poll_result(sink, result, synced=True)

    assert sink.values == {"blockNumber": 16.0, "transactions": 2.0, "blocksbehind": 0.0, "synced": 1.0}
    assert [failure.metric for failure in result.failures] == ["gasLimit"]
    assert isinstance(result.failures[0].error, OverflowError)
