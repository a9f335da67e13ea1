"""Reference oracle used as ground truth for the chain height."""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable
from urllib.parse import urlencode

import requests

from .exceptions import DecodeError, UnsupportedChainError
from .rpc import (
    MAX_ERROR_BODY_LENGTH,
    create_http_session,
    decode_envelope,
    ensure_ok,
    hex_to_int,
    translate_request_exception,
)

REFERENCE_URLS: dict[str, str] = {
    "kovan": "https://kovan.etherscan.io/api?module=proxy&action=eth_blockNumber",
    "foundation": "https://api.etherscan.io/api?module=proxy&action=eth_blockNumber",
}


def resolve_reference_url(chain: str, *, api_key: str | None = None) -> str:
    """Map a chain name reported by the node to its reference oracle URL.

    Raises:
        UnsupportedChainError: If the chain has no entry in ``REFERENCE_URLS``.
    """
    try:
        url = REFERENCE_URLS[chain]
    except KeyError:
        raise UnsupportedChainError(chain, supported=sorted(REFERENCE_URLS)) from None

    if api_key:
        url = f"{url}&{urlencode({'apikey': api_key})}"

    return url


@runtime_checkable
class ReferenceClientProtocol(Protocol):
    @property
    def url(self) -> str: ...

    def current_height(self) -> int: ...


class ReferenceClient:
    """Fetches the externally observed chain height with a plain GET."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._session = session or create_http_session(pool_size=1)

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        self._session.close()

    def current_height(self) -> int:
        try:
            response = self._session.get(self._url, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise translate_request_exception(exc, endpoint=self._url, method="GET") from exc

        body = ensure_ok(response, endpoint=self._url, method="GET")

        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise DecodeError(
                "Reference response is not valid JSON.",
                endpoint=self._url,
                method="GET",
                literal=body[:MAX_ERROR_BODY_LENGTH],
            ) from exc

        # Etherscan's proxy module wraps the height in a JSON-RPC envelope.
        if isinstance(parsed, dict):
            parsed = decode_envelope(body, endpoint=self._url, method="GET")

        return hex_to_int(parsed, field="result")


__all__ = [
    "REFERENCE_URLS",
    "ReferenceClient",
    "ReferenceClientProtocol",
    "resolve_reference_url",
]
