"""
Expense Tracker API — Application Aggregate
=============================================

What:  The single object that owns every long-lived component: settings,
       database manager, token verifier, user service, shutdown coordinator
       and (when run as a process) the HTTP listener.
How:   Built once at startup and stored on `app.state.application`; routes
       reach it through `app.dependencies`, the coordinator receives its
       collaborators through its constructor.
When:  `startup()` runs from the ASGI lifespan; `run()` is the process
       entry point used by `python -m app`.

Startup sequence:
    1. Validate configuration (ConfigError is fatal in production)
    2. Schedule the database connect in the background
    3. (run() only) bind the HTTP listener; it does not wait for step 2

Database outcome policy:
    connected   → ensure indexes, serve normally
    error, production  → keep serving, /health reports "degraded"
    error, development → fatal, exit code 1
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from pymongo.errors import PyMongoError

from app.auth.verifier import TokenVerifier
from app.config import Settings
from app.database import ConnectionState, DatabaseManager
from app.exceptions import DatabaseConnectionError
from app.server import HttpListener
from app.services.user_service import UserService
from app.shutdown import ShutdownCoordinator, ShutdownState, terminate_process

logger = logging.getLogger(__name__)


class Application:
    """
    Args:
        settings: Frozen configuration
        database: Connection manager (default: built from settings)
        verifier: Token verifier (default: built from settings)
        users: User service
        terminate: Process exit hook handed to the coordinator
    """

    def __init__(
        self,
        settings: Settings,
        *,
        database: Optional[DatabaseManager] = None,
        verifier: Optional[TokenVerifier] = None,
        users: Optional[UserService] = None,
        terminate: Callable[[int], None] = terminate_process,
    ):
        self.settings = settings
        self.database = database or DatabaseManager.from_settings(settings)
        self.verifier = verifier or TokenVerifier.from_settings(settings)
        self.users = users or UserService()
        self.coordinator = ShutdownCoordinator(
            self.database,
            timeout=settings.shutdown_timeout,
            terminate=terminate,
        )
        self.listener: Optional[HttpListener] = None
        self.api = None  # set by app.main.create_app()
        self.started_at = time.monotonic()
        self._database_task: Optional["asyncio.Task[None]"] = None

        self.database.subscribe(self._log_database_state)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    def _log_database_state(self, old: ConnectionState, new: ConnectionState) -> None:
        level = logging.WARNING if new is ConnectionState.ERROR else logging.INFO
        logger.log(level, "Database %s -> %s", old.value, new.value)

    # ── Lifespan ──────────────────────────────────────────────────────────

    async def startup(self) -> None:
        self.settings.validate_required()
        if self._database_task is None:
            self._database_task = asyncio.create_task(
                self._connect_database(), name="database-startup"
            )
            self._database_task.add_done_callback(self._on_background_done)

    async def _connect_database(self) -> None:
        state = await self.database.start()

        if state is ConnectionState.CONNECTED:
            try:
                await self.users.ensure_indexes(self.database.database)
            except PyMongoError as e:
                logger.error("Could not ensure indexes: %s", e)
            return

        if self.database.closed:
            return

        error = DatabaseConnectionError(
            attempts=self.database.attempts,
            context={"cause": repr(self.database.last_error)},
        )
        if self.settings.is_production:
            logger.error(
                "Database unavailable after %d attempt(s); serving in degraded mode",
                self.database.attempts,
            )
            return
        self.coordinator.fatal(error, where="database startup")

    def _on_background_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.coordinator.fatal(exc, where=task.get_name())

    async def shutdown(self) -> None:
        """
        ASGI lifespan shutdown.

        When the coordinator is draining it closes the database itself after
        the listener stops; otherwise (external ASGI server) close it here.
        """
        if self.coordinator.state is ShutdownState.RUNNING:
            await self.database.close()
        if self._database_task is not None and not self._database_task.done():
            await asyncio.wait({self._database_task})

    # ── Process ───────────────────────────────────────────────────────────

    async def run(self) -> int:
        """
        Serve until a signal or a fatal error; return the process exit code.
        """
        if self.api is None:
            raise RuntimeError("create_app() must be called before run()")

        self.listener = HttpListener(self.api, self.settings)
        self.coordinator.attach_listener(self.listener)
        self.coordinator.install()
        try:
            await self.listener.start()
            self.listener.on_exit(self._on_listener_exit)
            return await self.coordinator.wait()
        finally:
            await self.listener.abort()
            self.coordinator.uninstall()

    def _on_listener_exit(self, task: "asyncio.Task[None]") -> None:
        if self.coordinator.state is not ShutdownState.RUNNING or task.cancelled():
            return
        exc = task.exception() or RuntimeError("HTTP listener stopped unexpectedly")
        self.coordinator.fatal(exc, where="http listener")
