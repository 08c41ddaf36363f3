"""
Expense Tracker API — Shutdown Coordinator
============================================

What:  Turns SIGINT/SIGTERM into an orderly drain and a process exit code.
How:   A monotonic state machine driven from the event loop. Signals are
       registered with `loop.add_signal_handler`; uncaught background errors
       arrive through the loop's exception handler.
Who:   Created by the Application; `python -m app` awaits `wait()` and exits
       with the returned code.

State machine:
    RUNNING ──(signal)──▶ DRAINING ──(drain finished)──▶ CLOSED
       │                                                   ▲
       └──────────────(fatal error, exit 1)────────────────┘

Drain sequence (bounded by `timeout` seconds):
    1. HTTP listener stops accepting connections; in-flight requests finish
    2. Database connection closes
    Exit code 0 if both steps succeed, 1 if either fails or the bound is hit.
    If the listener step times out or fails before step 2 began, the database
    still gets one close attempt bounded by `close_timeout`. A step that began
    and failed is logged, never retried.

Fatal error policy:
    RUNNING  → log, CLOSED with exit code 1
    DRAINING → log only (the drain decides the exit code)
    CLOSED   → log only
"""

import asyncio
import logging
import os
import signal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


_ORDER = {ShutdownState.RUNNING: 0, ShutdownState.DRAINING: 1, ShutdownState.CLOSED: 2}


class Drainable(Protocol):
    async def drain(self) -> None:
        """Stop accepting connections and return once in-flight requests are done."""


class Closable(Protocol):
    async def close(self) -> None:
        ...


def terminate_process(exit_code: int) -> None:
    """Flush logging and end the process immediately."""
    logging.shutdown()
    os._exit(exit_code)


class ShutdownCoordinator:
    """
    Owns ShutdownState and the drain sequence.

    Args:
        database: Closed after the listener has drained
        listener: HTTP listener to drain; may be attached later
        timeout: Upper bound for the whole drain, in seconds
        close_timeout: Bound for the database close attempted after the
                       listener step timed out or failed
        terminate: Called with the exit code when a fatal error happens and no
                   runner is awaiting `wait()` (e.g. under an external ASGI server)
    """

    def __init__(
        self,
        database: Closable,
        listener: Optional[Drainable] = None,
        *,
        timeout: float = 10.0,
        close_timeout: float = 2.0,
        terminate: Callable[[int], None] = terminate_process,
    ):
        self._database = database
        self._listener = listener
        self._timeout = timeout
        self._close_timeout = close_timeout
        self._database_close_started = False
        self._terminate = terminate

        self._state = ShutdownState.RUNNING
        self._exit_code: Optional[int] = None
        self._closed = asyncio.Event()
        self._drain_task: Optional["asyncio.Task[None]"] = None
        self._installed_on: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def accepting_requests(self) -> bool:
        return self._state is ShutdownState.RUNNING

    def attach_listener(self, listener: Drainable) -> None:
        self._listener = listener

    def _advance(self, new: ShutdownState) -> None:
        if _ORDER[new] <= _ORDER[self._state]:
            raise RuntimeError(
                f"Shutdown state cannot move from {self._state.value} to {new.value}"
            )
        logger.debug("Shutdown state %s -> %s", self._state.value, new.value)
        self._state = new

    # ── Process hooks ─────────────────────────────────────────────────────

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register signal handlers and the loop exception handler."""
        loop = loop or asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)
        loop.set_exception_handler(self.handle_loop_exception)
        self._installed_on = loop

    def uninstall(self) -> None:
        loop, self._installed_on = self._installed_on, None
        if loop is None or loop.is_closed():
            return
        for sig in HANDLED_SIGNALS:
            loop.remove_signal_handler(sig)
        loop.set_exception_handler(None)

    def handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]
    ) -> None:
        exception = context.get("exception")
        if exception is None:
            loop.default_exception_handler(context)
            return
        self.fatal(exception, where=context.get("message", "event loop"))

    # ── Transitions ───────────────────────────────────────────────────────

    def request_shutdown(self, reason: str = "shutdown request") -> Optional["asyncio.Task[None]"]:
        """
        Start draining. Safe to call repeatedly; only the first call has an effect.

        Both handled signals land here with their name as `reason`.
        """
        if self._state is not ShutdownState.RUNNING:
            logger.info("Received %s while %s; ignoring", reason, self._state.value)
            return self._drain_task

        logger.info("Received %s: draining (timeout %.1fs)", reason, self._timeout)
        self._advance(ShutdownState.DRAINING)
        self._drain_task = asyncio.get_running_loop().create_task(
            self._drain(), name="shutdown-drain"
        )
        return self._drain_task

    async def shutdown(self, reason: str = "shutdown request") -> int:
        """Request a drain and wait for the exit code."""
        self.request_shutdown(reason)
        return await self.wait()

    async def wait(self) -> int:
        await self._closed.wait()
        assert self._exit_code is not None
        return self._exit_code

    def fatal(self, error: BaseException, where: str = "background task") -> None:
        """Apply the fatal error policy (see module docstring)."""
        if self._state is not ShutdownState.RUNNING:
            logger.error(
                "Error in %s while %s: %s",
                where,
                self._state.value,
                error,
                exc_info=error,
            )
            return

        logger.critical("Fatal error in %s; exiting: %s", where, error, exc_info=error)
        self._finish(1)
        if self._installed_on is None:
            self._terminate(1)

    # ── Drain ─────────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        try:
            await asyncio.wait_for(self._drain_steps(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("Drain did not finish within %.1fs", self._timeout)
            exit_code = 1
        except Exception:
            logger.exception("Drain failed")
            exit_code = 1
        else:
            exit_code = 0

        if exit_code and not self._database_close_started:
            await self._close_database_after_failure()
        self._finish(exit_code)

    async def _drain_steps(self) -> None:
        if self._listener is not None:
            logger.info("Stopping HTTP listener; waiting for in-flight requests")
            await self._listener.drain()
        logger.info("Closing database connection")
        self._database_close_started = True
        await self._database.close()

    async def _close_database_after_failure(self) -> None:
        logger.info("Closing database connection after failed drain")
        try:
            await asyncio.wait_for(self._database.close(), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            logger.error("Database close did not finish within %.1fs", self._close_timeout)
        except Exception:
            logger.exception("Database close failed")

    def _finish(self, exit_code: int) -> None:
        if self._state is ShutdownState.CLOSED:
            return
        self._exit_code = exit_code
        self._advance(ShutdownState.CLOSED)
        self._closed.set()
        logger.info("Shutdown complete (exit code %d)", exit_code)
