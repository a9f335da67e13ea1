import asyncio
import signal
import sys

import uvicorn

from .app import create_app
from .config import ExporterConfig, load_exporter_config
from .context import create_context
from .logging import build_log_extra, configure_logging, get_logger
from .settings import get_settings

LOGGER = get_logger(__name__)


async def run_server(config: ExporterConfig) -> None:
    """Serve metrics, health and the sync check on ``bind_addr:bind_port``.

    Uvicorn drives the FastAPI lifespan, which owns the poll and
    registration tasks, so stopping the server also stops both loops.
    """
    context = create_context(config)
    app = create_app(context)

    LOGGER.info(
        "Serving metrics for node %s on %s:%d",
        config.node_name,
        config.bind_addr,
        config.bind_port,
        extra=build_log_extra(endpoint=config.endpoint),
    )

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.bind_addr,
            port=config.bind_port,
            log_config=None,
        )
    )

    await server.serve()


def run(config: ExporterConfig | None = None) -> None:
    """Run the exporter until SIGTERM or SIGINT.

    The handlers turn both signals into KeyboardInterrupt, which
    asyncio.run() unwinds by cancelling the server task.
    """
    settings = get_settings()
    configure_logging(settings)

    resolved_config = config or load_exporter_config(settings=settings)

    def _signal_handler(signum: int, frame: object) -> None:
        raise KeyboardInterrupt(f"Received signal {signum}")

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    try:
        asyncio.run(run_server(resolved_config))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
