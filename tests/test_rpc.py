from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
import requests

from ethereum_exporter.exceptions import (
    DecodeError,
    RpcConnectionError,
    RpcProtocolError,
    RpcTimeoutError,
    TransportError,
)
from ethereum_exporter.rpc import (
    RpcClient,
    decode_envelope,
    ensure_ok,
    hex_to_int,
    int_to_hex,
    translate_request_exception,
)

ENDPOINT = "http://127.0.0.1:8545"


@pytest.mark.parametrize(
    ("literal", "expected"),
    [
        ("0x10", 16),
        ("10", 16),
        ("0x0", 0),
        ("0X1f", 31),
        (" 0x2a ", 42),
    ],
)
def test_hex_to_int_accepts_optional_prefix(literal: str, expected: int) -> None:
    assert hex_to_int(literal) == expected


def test_hex_to_int_is_not_bounded_to_64_bits() -> None:
    literal = "0x" + "f" * 40

    assert hex_to_int(literal) == 2**160 - 1


@pytest.mark.parametrize("literal", ["0xzz", "", "0x", "twelve"])
def test_hex_to_int_rejects_invalid_hex(literal: str) -> None:
    with pytest.raises(DecodeError) as exc_info:
        hex_to_int(literal, field="gasLimit")

    assert exc_info.value.literal == literal
    assert exc_info.value.field == "gasLimit"


def test_hex_to_int_rejects_non_strings() -> None:
    with pytest.raises(DecodeError, match="Expected a hex string, got int"):
        hex_to_int(16)


def test_int_to_hex() -> None:
    assert int_to_hex(16) == "0x10"
    assert int_to_hex(0) == "0x0"


def test_decode_envelope_returns_result() -> None:
    body = json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0x10"})

    assert decode_envelope(body, endpoint=ENDPOINT, method="eth_blockNumber") == "0x10"


def test_decode_envelope_allows_null_result() -> None:
    body = json.dumps({"jsonrpc": "2.0", "id": 1, "result": None})

    assert decode_envelope(body, endpoint=ENDPOINT, method="eth_getBlockByNumber") is None


def test_decode_envelope_raises_protocol_error_for_error_member() -> None:
    body = json.dumps(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "error": {"code": -32601, "message": "Method not found"},
        }
    )

    with pytest.raises(RpcProtocolError, match="Method not found") as exc_info:
        decode_envelope(body, endpoint=ENDPOINT, method="parity_chain")

    assert exc_info.value.rpc_error_code == -32601
    assert exc_info.value.context["method"] == "parity_chain"


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        json.dumps([1, 2, 3]),
        json.dumps({"jsonrpc": "2.0", "id": 1}),
    ],
)
def test_decode_envelope_rejects_malformed_bodies(body: str) -> None:
    with pytest.raises(DecodeError):
        decode_envelope(body, endpoint=ENDPOINT, method="eth_blockNumber")


def test_ensure_ok_raises_transport_error_with_status_and_body() -> None:
    response = SimpleNamespace(status_code=502, text="Bad Gateway")

    with pytest.raises(TransportError, match="Status code 502 different from 200") as exc_info:
        ensure_ok(response, endpoint=ENDPOINT, method="eth_blockNumber")

    assert exc_info.value.status_code == 502
    assert exc_info.value.body == "Bad Gateway"


@pytest.mark.parametrize(
    ("exception", "expected_type"),
    [
        (requests.Timeout("read timed out"), RpcTimeoutError),
        (requests.ConnectTimeout("connect timed out"), RpcTimeoutError),
        (requests.ConnectionError("connection refused"), RpcConnectionError),
        (requests.TooManyRedirects("loop"), TransportError),
    ],
)
def test_translate_request_exception(exception: requests.RequestException, expected_type: type) -> None:
    translated = translate_request_exception(exception, endpoint=ENDPOINT, method="net_peerCount")

    assert type(translated) is expected_type
    assert isinstance(translated, TransportError)
    assert translated.endpoint == ENDPOINT


def test_rpc_client_call_builds_jsonrpc_payload(rpc_session) -> None:
    session = rpc_session({"net_peerCount": "0x5", "eth_blockNumber": "0x10"})
    client = RpcClient(ENDPOINT, timeout_seconds=2.0, session=session)

    assert client.peer_count() == 5
    assert client.block_number() == 16

    assert session.requests == [
        {"id": 1, "method": "net_peerCount", "jsonrpc": "2.0", "params": []},
        {"id": 2, "method": "eth_blockNumber", "jsonrpc": "2.0", "params": []},
    ]


def test_rpc_client_posts_with_timeout_and_content_type() -> None:
    captured: dict[str, object] = {}

    def fake_post(url, data=None, headers=None, timeout=None):  # type: ignore[no-untyped-def]
        captured.update(url=url, headers=headers, timeout=timeout)
        return SimpleNamespace(status_code=200, text='{"jsonrpc":"2.0","id":1,"result":"0x1"}')

    client = RpcClient(ENDPOINT, timeout_seconds=3.5, session=SimpleNamespace(post=fake_post))

    client.gas_price()

    assert captured == {
        "url": ENDPOINT,
        "headers": {"Content-Type": "application/json"},
        "timeout": 3.5,
    }


def test_rpc_client_non_200_is_transport_error(rpc_session) -> None:
    session = rpc_session({"eth_hashrate": "0x0"}, status_code=503)
    client = RpcClient(ENDPOINT, timeout_seconds=1.0, session=session)

    with pytest.raises(TransportError) as exc_info:
        client.hash_rate()

    assert exc_info.value.status_code == 503


def test_rpc_client_connection_failure_is_transport_error(rpc_session) -> None:
    session = rpc_session({"net_peerCount": requests.ConnectionError("refused")})
    client = RpcClient(ENDPOINT, timeout_seconds=1.0, session=session)

    with pytest.raises(RpcConnectionError, match="net_peerCount"):
        client.peer_count()


def test_rpc_client_decode_error_names_method(rpc_session) -> None:
    session = rpc_session({"eth_gasPrice": "not-hex"})
    client = RpcClient(ENDPOINT, timeout_seconds=1.0, session=session)

    with pytest.raises(DecodeError) as exc_info:
        client.gas_price()

    assert exc_info.value.method == "eth_gasPrice"
    assert exc_info.value.literal == "not-hex"
    assert not isinstance(exc_info.value, TransportError)


def test_rpc_client_chain_returns_name(rpc_session) -> None:
    client = RpcClient(ENDPOINT, timeout_seconds=1.0, session=rpc_session({"parity_chain": "kovan"}))

    assert client.chain() == "kovan"


def test_rpc_client_chain_rejects_non_string(rpc_session) -> None:
    client = RpcClient(ENDPOINT, timeout_seconds=1.0, session=rpc_session({"parity_chain": 42}))

    with pytest.raises(DecodeError, match="Chain name is not a string"):
        client.chain()
