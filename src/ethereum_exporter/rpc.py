"""JSON-RPC client for the monitored node and hex codec helpers."""

from __future__ import annotations

import itertools
import json
import threading
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import requests
from web3 import Web3

from .exceptions import (
    DecodeError,
    RpcConnectionError,
    RpcProtocolError,
    RpcTimeoutError,
    TransportError,
)
from .models import BlockSnapshot, SyncProgress

JSONRPC_VERSION = "2.0"
DEFAULT_POOL_SIZE = 10
MAX_ERROR_BODY_LENGTH = 512

SYNC_FIELDS = (
    ("currentBlock", "current_block"),
    ("highestBlock", "highest_block"),
    ("startingBlock", "starting_block"),
    ("warpChunksAmount", "warp_chunks_amount"),
    ("warpChunksProcessed", "warp_chunks_processed"),
)


def hex_to_int(value: Any, *, field: str | None = None) -> int:
    """Decode a base-16 string (``0x`` prefix optional) into an unbounded int.

    Raises:
        DecodeError: If ``value`` is not a string or not valid hex. The
            offending literal is attached to the error.
    """
    if not isinstance(value, str):
        raise DecodeError(
            f"Expected a hex string, got {type(value).__name__}.",
            literal=value,
            field=field,
        )

    try:
        return Web3.to_int(hexstr=value.strip())
    except (TypeError, ValueError) as exc:
        raise DecodeError(
            f"Failed to decode hex value {value!r}.",
            literal=value,
            field=field,
        ) from exc


def int_to_hex(value: int) -> str:
    """Encode a non-negative integer as a ``0x``-prefixed quantity."""
    return Web3.to_hex(value)


def create_http_session(pool_size: int = DEFAULT_POOL_SIZE) -> requests.Session:
    """Create a ``requests.Session`` with a pooled adapter and no transport retries."""

    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def translate_request_exception(
    exc: requests.RequestException,
    *,
    endpoint: str,
    method: str,
) -> TransportError:
    """Map a ``requests`` failure onto the transport error taxonomy."""

    message = f"Request '{method}' to {endpoint} failed: {exc}"

    if isinstance(exc, requests.Timeout):
        return RpcTimeoutError(message, endpoint=endpoint, method=method)

    if isinstance(exc, requests.ConnectionError):
        return RpcConnectionError(message, endpoint=endpoint, method=method)

    return TransportError(message, endpoint=endpoint, method=method)


def ensure_ok(response: requests.Response, *, endpoint: str, method: str) -> str:
    """Return the response body, raising ``TransportError`` on any non-200 status."""

    body = response.text

    if response.status_code != 200:
        raise TransportError(
            f"Status code {response.status_code} different from 200.",
            endpoint=endpoint,
            method=method,
            status_code=response.status_code,
            body=body[:MAX_ERROR_BODY_LENGTH],
        )

    return body


def decode_envelope(body: str, *, endpoint: str, method: str) -> Any:
    """Unwrap a JSON-RPC response envelope and return its ``result`` member."""

    try:
        envelope = json.loads(body)
    except ValueError as exc:
        raise DecodeError(
            "Response body is not valid JSON.",
            endpoint=endpoint,
            method=method,
            literal=body[:MAX_ERROR_BODY_LENGTH],
        ) from exc

    if not isinstance(envelope, dict):
        raise DecodeError(
            "Response envelope is not a JSON object.",
            endpoint=endpoint,
            method=method,
            literal=body[:MAX_ERROR_BODY_LENGTH],
        )

    error = envelope.get("error")

    if error is not None:
        code = error.get("code") if isinstance(error, dict) else None
        detail = error.get("message") if isinstance(error, dict) else str(error)
        raise RpcProtocolError(
            f"Node returned an error for '{method}': {detail}",
            endpoint=endpoint,
            method=method,
            rpc_error_code=code,
            rpc_error_message=detail,
        )

    if "result" not in envelope:
        raise DecodeError(
            "Response envelope has no 'result' member.",
            endpoint=endpoint,
            method=method,
            literal=body[:MAX_ERROR_BODY_LENGTH],
        )

    return envelope["result"]


@runtime_checkable
class RpcClientProtocol(Protocol):
    @property
    def endpoint(self) -> str: ...

    def call(self, method: str, params: list[Any] | None = None) -> Any: ...

    def peer_count(self) -> int: ...

    def chain(self) -> str: ...

    def block_number(self) -> int: ...

    def block_by_number(self, number: int) -> tuple[BlockSnapshot, list[DecodeError]]: ...

    def sync_status(self) -> SyncProgress | None: ...

    def gas_price(self) -> int: ...

    def hash_rate(self) -> int: ...


class RpcClient:
    """Minimal JSON-RPC 2.0 client bound to a single node endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout_seconds: float,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_seconds = timeout_seconds
        self._session = session or create_http_session()
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def close(self) -> None:
        self._session.close()

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Perform one request/response exchange and return the opaque ``result``."""

        payload = {
            "id": self._next_id(),
            "method": method,
            "jsonrpc": JSONRPC_VERSION,
            "params": params if params is not None else [],
        }

        try:
            response = self._session.post(
                self._endpoint,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise translate_request_exception(exc, endpoint=self._endpoint, method=method) from exc

        body = ensure_ok(response, endpoint=self._endpoint, method=method)

        return decode_envelope(body, endpoint=self._endpoint, method=method)

    def _call_quantity(self, method: str) -> int:
        result = self.call(method)

        try:
            return hex_to_int(result)
        except DecodeError as exc:
            raise DecodeError(
                f"Failed to decode result of '{method}'.",
                endpoint=self._endpoint,
                method=method,
                literal=result,
            ) from exc

    def peer_count(self) -> int:
        return self._call_quantity("net_peerCount")

    def chain(self) -> str:
        result = self.call("parity_chain")

        if not isinstance(result, str):
            raise DecodeError(
                "Chain name is not a string.",
                endpoint=self._endpoint,
                method="parity_chain",
                literal=result,
            )

        return result

    def block_number(self) -> int:
        return self._call_quantity("eth_blockNumber")

    def gas_price(self) -> int:
        return self._call_quantity("eth_gasPrice")

    def hash_rate(self) -> int:
        return self._call_quantity("eth_hashrate")

    def block_by_number(self, number: int) -> tuple[BlockSnapshot, list[DecodeError]]:
        """Fetch a block and decode what is available.

        Each of ``timestamp``, ``transactions`` and ``gasLimit`` is decoded on
        its own; a missing or malformed field is reported in the returned
        error list while the remaining fields are still extracted.
        """
        method = "eth_getBlockByNumber"
        raw = self.call(method, [int_to_hex(number), True])

        if not isinstance(raw, dict):
            raise DecodeError(
                f"Block {number} not returned as an object.",
                endpoint=self._endpoint,
                method=method,
                literal=raw,
            )

        errors: list[DecodeError] = []
        timestamp: datetime | None = None
        transaction_count: int | None = None
        gas_limit: int | None = None

        if "timestamp" in raw:
            try:
                seconds = hex_to_int(raw["timestamp"], field="timestamp")
                timestamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
            except DecodeError as exc:
                errors.append(exc)
            except (OverflowError, OSError, ValueError) as exc:
                errors.append(
                    DecodeError(
                        f"Timestamp out of range: {exc}",
                        field="timestamp",
                        literal=raw["timestamp"],
                    )
                )
        else:
            errors.append(DecodeError("timestamp field not found", field="timestamp"))

        if "transactions" in raw:
            transactions = raw["transactions"]

            if isinstance(transactions, list):
                transaction_count = len(transactions)
            else:
                errors.append(
                    DecodeError(
                        "transactions field found but not a list",
                        field="transactions",
                        literal=type(transactions).__name__,
                    )
                )
        else:
            errors.append(DecodeError("transactions field not found", field="transactions"))

        if "gasLimit" in raw:
            try:
                gas_limit = hex_to_int(raw["gasLimit"], field="gasLimit")
            except DecodeError as exc:
                errors.append(exc)
        else:
            errors.append(DecodeError("gasLimit field not found", field="gasLimit"))

        snapshot = BlockSnapshot(
            number=number,
            timestamp=timestamp,
            transaction_count=transaction_count,
            gas_limit=gas_limit,
        )

        return snapshot, errors

    def sync_status(self) -> SyncProgress | None:
        """Return sync progress, or ``None`` when the node reports it is not syncing.

        All five numeric fields must decode; one bad field fails the whole call.
        """
        method = "eth_syncing"
        raw = self.call(method)

        if isinstance(raw, bool):
            return None

        if not isinstance(raw, dict):
            raise DecodeError(
                "Sync status is neither a boolean nor an object.",
                endpoint=self._endpoint,
                method=method,
                literal=raw,
            )

        values: dict[str, int] = {}

        for key, attribute in SYNC_FIELDS:
            try:
                values[attribute] = hex_to_int(raw.get(key), field=key)
            except DecodeError as exc:
                raise DecodeError(
                    f"Failed to parse {key} as integer: {raw.get(key)!r}",
                    endpoint=self._endpoint,
                    method=method,
                    field=key,
                    literal=raw.get(key),
                ) from exc

        return SyncProgress(**values)


__all__ = [
    "RpcClient",
    "RpcClientProtocol",
    "create_http_session",
    "decode_envelope",
    "ensure_ok",
    "hex_to_int",
    "int_to_hex",
    "translate_request_exception",
]
