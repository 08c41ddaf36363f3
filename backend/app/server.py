"""
Expense Tracker API — HTTP Listener
=====================================

What:  Runs the FastAPI app on uvicorn inside the Application's event loop.
How:   A `uvicorn.Server` subclass with signal capture disabled, so SIGINT and
       SIGTERM reach the ShutdownCoordinator instead of uvicorn.
Who:   Created by `Application.run()`; drained by the coordinator.

Drain behaviour (uvicorn's graceful shutdown):
    1. Listening sockets close, no new connections
    2. Idle keep-alive connections close
    3. In-flight requests run to completion (bounded by
       `timeout_graceful_shutdown`)
    4. The ASGI lifespan shutdown runs
"""

import asyncio
import contextlib
import logging
import math
from typing import Any, Callable, Iterator, Optional

import uvicorn

from app.config import Settings

logger = logging.getLogger(__name__)


class _CoordinatedServer(uvicorn.Server):
    """uvicorn.Server that leaves signal handling to the ShutdownCoordinator."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


class HttpListener:
    """
    Owns the uvicorn server task.

    Args:
        asgi_app: The FastAPI application
        settings: Host, port and the graceful shutdown bound
        startup_poll: Seconds between checks while waiting for the socket to bind
    """

    def __init__(self, asgi_app: Any, settings: Settings, startup_poll: float = 0.05):
        config = uvicorn.Config(
            asgi_app,
            host=settings.host,
            port=settings.port,
            lifespan="on",
            log_config=None,  # setup_logging() already configured the root logger
            timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout),
        )
        self._server = _CoordinatedServer(config)
        self._startup_poll = startup_poll
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Start serving and return once the socket is bound.

        Raises:
            RuntimeError: uvicorn exited before it started (bind failure,
                          lifespan startup failure)
        """
        self._task = asyncio.create_task(self._server.serve(), name="http-listener")
        while not self._server.started and not self._task.done():
            await asyncio.sleep(self._startup_poll)
        if self._task.done():
            self._task.result()
            raise RuntimeError("HTTP listener exited during startup")
        logger.info(
            "API listening on %s:%d",
            self._server.config.host,
            self._server.config.port,
        )

    def on_exit(self, callback: Callable[["asyncio.Task[None]"], None]) -> None:
        if self._task is not None:
            self._task.add_done_callback(callback)

    async def drain(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        logger.info("HTTP listener stopped")

    async def abort(self) -> None:
        """Stop immediately without waiting for in-flight requests."""
        if not self.running:
            return
        self._server.force_exit = True
        self._server.should_exit = True
        self._task.cancel()
        await asyncio.wait({self._task})
