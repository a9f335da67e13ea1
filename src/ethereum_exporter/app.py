"""FastAPI application factory and lifespan management."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Coroutine

from fastapi import FastAPI

from .api import register_routes
from .context import ApplicationContext
from .logging import build_log_extra, get_logger

LOGGER = get_logger(__name__)

APP_TITLE = "Ethereum Prometheus Exporter"
APP_DESCRIPTION = "Exposes Prometheus metrics and a sync check for an Ethereum node."


def _start_task(coro: Coroutine[object, object, object], name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return

    exc = task.exception()

    if exc is not None:
        LOGGER.error(
            "Background task %s failed: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )


async def _shutdown_tasks(tasks: list[asyncio.Task], timeout_seconds: float) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()

    if not tasks:
        return

    try:
        await asyncio.wait_for(
            asyncio.gather(*tasks, return_exceptions=True),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        LOGGER.warning(
            "Background tasks did not stop within %.1f seconds.",
            timeout_seconds,
            extra=build_log_extra(additional={"timeout_seconds": timeout_seconds}),
        )


def _build_lifespan(context: ApplicationContext):
    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start polling and registration, and tear both down on shutdown.

        The poll loop and the registration loop run as independent tasks.
        Registration never blocks polling and gives up on its own after its
        bounded number of attempts.
        """

        context.exporter_metrics.up.set(1)
        app.state.context = context

        tasks = [_start_task(context.engine.run(), "poll-engine")]

        if context.registration is not None:
            tasks.append(_start_task(context.registration.run(), "consul-registration"))
        else:
            LOGGER.info("Service registration disabled.")

        app.state.background_tasks = tasks

        try:
            yield
        finally:
            context.exporter_metrics.up.set(0)
            context.engine.stop()

            await _shutdown_tasks(tasks, context.settings.poller.shutdown_timeout_seconds)

            app.state.background_tasks = []
            context.close()

    return _lifespan


def create_app(context: ApplicationContext) -> FastAPI:
    """Create a FastAPI instance serving metrics and health for ``context``."""

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        lifespan=_build_lifespan(context),
    )
    app.state.context = context

    register_routes(app)

    return app


__all__ = ["create_app"]
