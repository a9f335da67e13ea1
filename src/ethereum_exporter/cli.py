"""Command-line entry point: validate, print or run the exporter configuration."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .config import ExporterConfig, load_exporter_config
from .exceptions import ConfigError
from .settings import get_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ethereum-exporter",
        description="Export Ethereum node metrics to Prometheus and register the node in Consul.",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to config.toml (defaults to ETHEREUM_EXPORTER_CONFIG_PATH or ./config.toml).",
    )
    parser.add_argument("--endpoint", default=None, help="JSON-RPC endpoint of the node.")
    parser.add_argument(
        "--nodename",
        dest="node_name",
        default=None,
        help="Name used as the metric prefix (defaults to the hostname).",
    )
    parser.add_argument("--bind", dest="bind_addr", default=None, help="IP address to serve on.")
    parser.add_argument("--port", dest="bind_port", type=int, default=None, help="Port to serve on.")
    parser.add_argument(
        "--interval",
        dest="poll_interval",
        default=None,
        help="Poll interval, e.g. '5s' or '1m'.",
    )
    parser.add_argument(
        "--consul",
        dest="consul_address",
        default=None,
        help="Consul agent address.",
    )
    parser.add_argument(
        "--service",
        dest="consul_service_name",
        default=None,
        help="Service name to register in Consul.",
    )
    parser.add_argument(
        "--no-register",
        action="store_true",
        help="Do not register the exporter in Consul.",
    )
    parser.add_argument(
        "--print-resolved",
        action="store_true",
        help="Print the merged configuration as JSON and exit.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the configuration and exit.",
    )
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "endpoint": args.endpoint,
        "node_name": args.node_name,
        "bind_addr": args.bind_addr,
        "bind_port": args.bind_port,
        "poll_interval": args.poll_interval,
        "consul_address": args.consul_address,
        "consul_service_name": args.consul_service_name,
    }

    if args.no_register:
        overrides["registration_enabled"] = False

    return overrides


def render_config(config: ExporterConfig, config_path: Path | None = None) -> str:
    settings = get_settings()
    payload = {
        "config_path": str(config_path or settings.config.resolve_config_path()),
        "exporter": asdict(config),
    }

    return json.dumps(payload, indent=2, sort_keys=True)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point used by the ``ethereum-exporter`` script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config_path).expanduser().resolve() if args.config_path else None

    try:
        config = load_exporter_config(config_path, overrides=_overrides(args))
    except FileNotFoundError as exc:
        parser.error(f"Config file not found: {exc}")
    except ConfigError as exc:
        parser.error(str(exc))

    if args.print_resolved:
        print(render_config(config, config_path))
        return 0

    if args.check:
        print("Configuration OK")
        return 0

    from .main import run

    run(config)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
