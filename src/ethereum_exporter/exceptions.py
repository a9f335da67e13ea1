"""Error types raised by the exporter.

Every error carries a free-form ``context`` mapping that ends up in log
records, so callers can attach the endpoint, method, or config key that
was involved without formatting it into the message.
"""

from __future__ import annotations


def _collect(extra: dict[str, object] | None, **fields: object) -> dict[str, object]:
    """Keep populated fields, then layer caller-supplied context on top."""

    collected = {key: item for key, item in fields.items() if item is not None and item != ""}
    if extra:
        collected.update(extra)
    return collected


class EthereumExporterError(Exception):
    """Root of the exporter's error hierarchy."""

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context) if context else {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        rendered = ", ".join(f"{key}={item!r}" for key, item in self.context.items())
        return f"{self.message} (context: {rendered})"


class RpcError(EthereumExporterError):
    """A call to the node or to a reference API went wrong."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        method: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=_collect(context, endpoint=endpoint, method=method))
        self.endpoint = endpoint
        self.method = method


class TransportError(RpcError):
    """The request never produced a usable HTTP 200 response.

    Only this family counts against node liveness.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        endpoint: str | None = None,
        method: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            endpoint=endpoint,
            method=method,
            context=_collect(context, status_code=status_code, body=body),
        )
        self.status_code = status_code
        self.body = body


class RpcConnectionError(TransportError):
    """Connection refused, reset, or name resolution failed."""


class RpcTimeoutError(TransportError):
    """No answer within the request timeout."""


class DecodeError(RpcError):
    """A response envelope or quantity literal was malformed."""

    def __init__(
        self,
        message: str,
        *,
        literal: object | None = None,
        field: str | None = None,
        endpoint: str | None = None,
        method: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            endpoint=endpoint,
            method=method,
            context=_collect(context, field=field, literal=literal),
        )
        self.literal = literal
        self.field = field


class RpcProtocolError(RpcError):
    """The node replied with a JSON-RPC ``error`` member."""

    def __init__(
        self,
        message: str,
        *,
        rpc_error_code: int | None = None,
        rpc_error_message: str | None = None,
        endpoint: str | None = None,
        method: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            endpoint=endpoint,
            method=method,
            context=_collect(context, rpc_error_code=rpc_error_code, rpc_error_message=rpc_error_message),
        )
        self.rpc_error_code = rpc_error_code
        self.rpc_error_message = rpc_error_message


class UnsupportedChainError(EthereumExporterError):
    """No reference oracle exists for the chain the node reports."""

    def __init__(self, chain: str, *, supported: list[str] | None = None) -> None:
        super().__init__(
            f"Chain '{chain}' is not supported.",
            context=_collect(None, chain=chain, supported=supported or None),
        )
        self.chain = chain


class RegistrationError(EthereumExporterError):
    """The service directory could not be reached or refused the service."""

    def __init__(
        self,
        message: str,
        *,
        service_id: str | None = None,
        directory: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=_collect(context, service_id=service_id, directory=directory))
        self.service_id = service_id
        self.directory = directory


class ConfigError(EthereumExporterError):
    """The exporter configuration could not be read or merged."""

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        config_section: str | None = None,
        config_key: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            context=_collect(
                context,
                config_file=config_file,
                config_section=config_section,
                config_key=config_key,
            ),
        )
        self.config_file = config_file
        self.config_section = config_section
        self.config_key = config_key


class ValidationError(ConfigError):
    """A single configuration value has the wrong type or range."""

    def __init__(
        self,
        message: str,
        *,
        value: object | None = None,
        expected_type: str | None = None,
        config_file: str | None = None,
        config_section: str | None = None,
        config_key: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            config_file=config_file,
            config_section=config_section,
            config_key=config_key,
            context=_collect(context, value=value, expected_type=expected_type),
        )
        self.value = value
        self.expected_type = expected_type


__all__ = [
    "ConfigError",
    "DecodeError",
    "EthereumExporterError",
    "RegistrationError",
    "RpcConnectionError",
    "RpcError",
    "RpcProtocolError",
    "RpcTimeoutError",
    "TransportError",
    "UnsupportedChainError",
    "ValidationError",
]
