from __future__ import annotations

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from ethereum_exporter.config import ExporterConfig
from ethereum_exporter.models import BlockSnapshot
from ethereum_exporter.settings import reset_settings_cache


@pytest.fixture(autouse=True)
def reset_exporter_state() -> None:
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def exporter_config() -> ExporterConfig:
    return ExporterConfig(
        endpoint="http://127.0.0.1:8545",
        node_name="parity-test",
        bind_addr="10.0.0.5",
        bind_port=4546,
        poll_interval="1s",
        consul_address="http://127.0.0.1:8500",
        consul_service_name="pool",
    )


def block_at(number: int, seconds: int, *, transactions: int = 2, gas_limit: int = 8_000_000) -> BlockSnapshot:
    return BlockSnapshot(
        number=number,
        timestamp=datetime.fromtimestamp(seconds, tz=timezone.utc),
        transaction_count=transactions,
        gas_limit=gas_limit,
    )


class FakeRpc:
    """In-memory stand-in for RpcClient; values that are exceptions get raised."""

    endpoint = "http://127.0.0.1:8545"

    def __init__(self, **values: Any) -> None:
        self.values: dict[str, Any] = {
            "chain": "kovan",
            "peer_count": 3,
            "block_number": 16,
            "gas_price": 20_000_000_000,
            "hash_rate": 0,
            "sync_status": None,
        }
        self.values.update(values)
        self.blocks: dict[int, Any] = {}
        self.block_requests: list[int] = []
        self.closed = False

    def _value(self, name: str) -> Any:
        value = self.values[name]

        if isinstance(value, BaseException):
            raise value

        return value

    def chain(self) -> str:
        return self._value("chain")

    def peer_count(self) -> int:
        return self._value("peer_count")

    def block_number(self) -> int:
        return self._value("block_number")

    def gas_price(self) -> int:
        return self._value("gas_price")

    def hash_rate(self) -> int:
        return self._value("hash_rate")

    def sync_status(self) -> Any:
        return self._value("sync_status")

    def block_by_number(self, number: int) -> Any:
        self.block_requests.append(number)
        block = self.blocks.get(number)

        if isinstance(block, BaseException):
            raise block

        if block is None:
            return block_at(number, 1_500_000_000 + number * 4), []

        return block

    def close(self) -> None:
        self.closed = True


class FakeReference:
    def __init__(self, height: Any = 16, url: str = "https://reference.example") -> None:
        self.height = height
        self.url = url

    def current_height(self) -> int:
        if isinstance(self.height, BaseException):
            raise self.height

        return self.height


class RecordingSink:
    def __init__(self) -> None:
        self.values: dict[str, float] = {}
        self.writes: list[tuple[str, float]] = []

    def set_gauge(self, key: Any, value: float) -> None:
        flat = key if isinstance(key, str) else ".".join(key)
        self.values[flat] = value
        self.writes.append((flat, value))


@pytest.fixture
def make_rpc() -> Callable[..., FakeRpc]:
    return FakeRpc


@pytest.fixture
def make_reference() -> Callable[..., FakeReference]:
    return FakeReference


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


def json_response(payload: Any, status_code: int = 200) -> SimpleNamespace:
    return SimpleNamespace(status_code=status_code, text=json.dumps(payload))


@pytest.fixture
def rpc_session() -> Callable[..., SimpleNamespace]:
    """Build a fake requests session answering JSON-RPC posts from a method table."""

    def _build(results: dict[str, Any], *, status_code: int = 200) -> SimpleNamespace:
        requests_seen: list[dict[str, Any]] = []

        def post(url: str, data: str | None = None, headers: Any = None, timeout: Any = None) -> Any:
            payload = json.loads(data or "{}")
            requests_seen.append(payload)
            result = results[payload["method"]]

            if isinstance(result, BaseException):
                raise result

            return json_response(
                {"jsonrpc": "2.0", "id": payload["id"], "result": result},
                status_code=status_code,
            )

        return SimpleNamespace(post=post, close=lambda: None, requests=requests_seen)

    return _build


@pytest.fixture
def make_block() -> Callable[..., BlockSnapshot]:
    return block_at
