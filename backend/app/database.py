"""
Expense Tracker API — Database Connection Manager
===================================================

What:  Owns the lifecycle of the MongoDB client: connect with bounded retry,
       expose the current state, close once.
How:   A tenacity retry loop with a fixed wait and an injected sleep drives
       connection attempts; each attempt builds an `AsyncMongoClient` and pings
       the server. State changes are pushed to subscribed listeners and can be
       polled with `current_state()`.
Who:   Created by the Application; read by health checks and request
       dependencies; closed by the shutdown coordinator.
When:  `start()` runs during app startup as a background task, so the HTTP
       listener never waits on the database.

State machine:
    DISCONNECTED ──▶ CONNECTING ──▶ CONNECTED ──(close)──▶ DISCONNECTED
                         │  ▲
                         ▼  │ (retry after delay)
                        ERROR

    Any other transition raises RuntimeError.

Retry policy:
    Total attempts = max_retries + 1, separated by a fixed `retry_delay`.
    A missing or malformed URI is a configuration problem: one attempt,
    no retry.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from pymongo import AsyncMongoClient
from pymongo.errors import ConfigurationError, PyMongoError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    wait_fixed,
)
from tenacity.stop import stop_base

from app.config import Settings
from app.exceptions import DatabaseUnavailableError

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


_ALLOWED_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.ERROR}),
    ConnectionState.ERROR: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}

StateListener = Callable[[ConnectionState, ConnectionState], None]
SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryBudget:
    """Retries left in the current connect phase and the pause between them."""

    remaining_attempts: int
    delay: float

    @property
    def exhausted(self) -> bool:
        return self.remaining_attempts <= 0

    def consume(self) -> None:
        self.remaining_attempts -= 1

    def reset(self, attempts: int) -> None:
        self.remaining_attempts = attempts


class stop_when_budget_spent(stop_base):
    """Stop once the manager's RetryBudget reaches zero."""

    def __init__(self, budget: RetryBudget) -> None:
        self.budget = budget

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.budget.exhausted


class stop_when_closed(stop_base):
    """Stop as soon as close() has been requested."""

    def __init__(self, manager: "DatabaseManager") -> None:
        self.manager = manager

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.manager.closed


class DatabaseManager:
    """
    Sole owner of the MongoDB client and of its ConnectionState.

    Args:
        uri: MongoDB connection string (None → immediate ERROR, no retry)
        database_name: Database used when the URI does not name one
        max_retries: Retries after the first attempt
        retry_delay: Fixed seconds between attempts
        server_selection_timeout_ms: Per-attempt bound on finding a server
        socket_timeout_ms: Idle timeout for established sockets
        client_factory: Builds the client; tests pass a fake
        sleep: Awaitable sleep used for the backoff; tests pass a recorder

    Concurrency:
        Only one connection attempt is ever in flight. A second `connect()`
        (or `start()`) while one is running awaits the same task.
    """

    def __init__(
        self,
        uri: Optional[str],
        *,
        database_name: str = "expense_tracker",
        max_retries: int = 5,
        retry_delay: float = 5.0,
        server_selection_timeout_ms: int = 5000,
        socket_timeout_ms: int = 45000,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._uri = uri
        self._database_name = database_name
        self._max_retries = max_retries
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._socket_timeout_ms = socket_timeout_ms
        self._client_factory = client_factory
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._budget = RetryBudget(remaining_attempts=max_retries, delay=retry_delay)
        self._listeners: List[StateListener] = []
        self._client: Optional[Any] = None
        self._database: Optional[Any] = None
        self._inflight: Optional["asyncio.Task[ConnectionState]"] = None
        self._closed = False
        self._closing = asyncio.Event()
        self._log_retry = before_sleep_log(logger, logging.WARNING)

        self.attempts = 0
        self.last_error: Optional[BaseException] = None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "DatabaseManager":
        options: Dict[str, Any] = {
            "database_name": settings.mongo_db_name,
            "max_retries": settings.db_max_retries,
            "retry_delay": settings.db_retry_delay,
            "server_selection_timeout_ms": settings.db_server_selection_timeout_ms,
            "socket_timeout_ms": settings.db_socket_timeout_ms,
        }
        options.update(overrides)
        return cls(settings.mongo_uri, **options)

    # ── State ─────────────────────────────────────────────────────────────

    def current_state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def budget(self) -> RetryBudget:
        return self._budget

    @property
    def database(self) -> Any:
        """
        The database handle shared by all request handlers.

        Raises:
            DatabaseUnavailableError: Not connected (yet, or any more)
        """
        if self._state is not ConnectionState.CONNECTED or self._database is None:
            raise DatabaseUnavailableError(context={"state": self._state.value})
        return self._database

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register `listener(old, new)` for state changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new: ConnectionState) -> None:
        old = self._state
        if new not in _ALLOWED_TRANSITIONS[old]:
            raise RuntimeError(f"Illegal connection state transition {old.value} -> {new.value}")
        self._state = new
        logger.debug("Database state %s -> %s", old.value, new.value)
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                logger.exception("Connection state listener %r failed", listener)

    # ── Connect ───────────────────────────────────────────────────────────

    def start(self) -> "asyncio.Task[ConnectionState]":
        """Schedule `connect()` on the running loop and return immediately."""
        if self._inflight is not None and not self._inflight.done():
            return self._inflight
        return asyncio.create_task(self.connect(), name="database-connect")

    async def connect(self) -> ConnectionState:
        """
        Connect with bounded retry and return the resulting state.

        Returns CONNECTED on success and ERROR once the budget is spent or the
        URI is unusable; the failure itself is in `last_error`. Exceptions that
        are not pymongo errors propagate.
        """
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)
        if self._closed:
            logger.warning("Database manager is closed; not reconnecting")
            return self._state
        if self._state is ConnectionState.CONNECTED:
            return self._state

        self._inflight = asyncio.ensure_future(self._connect_with_retry())
        return await asyncio.shield(self._inflight)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=(
                retry_if_exception_type(PyMongoError)
                & retry_if_not_exception_type(ConfigurationError)
            ),
            stop=stop_when_budget_spent(self._budget) | stop_when_closed(self),
            wait=wait_fixed(self._budget.delay),
            sleep=self._backoff,
            before_sleep=self._before_retry,
            reraise=True,
        )

    async def _connect_with_retry(self) -> ConnectionState:
        self.attempts = 0
        self._budget.reset(self._max_retries)
        try:
            async for attempt in self._retrying():
                with attempt:
                    if self._closed:
                        break
                    await self._attempt()
        except PyMongoError as exc:
            if self._closed:
                logger.info("Database connect abandoned: manager closed")
            elif isinstance(exc, ConfigurationError):
                logger.error("MongoDB configuration error, not retrying: %s", exc)
            else:
                logger.error(
                    "MongoDB unreachable after %d attempt(s): %s", self.attempts, exc
                )
        return self._state

    async def _attempt(self) -> None:
        self.attempts += 1
        self._transition(ConnectionState.CONNECTING)
        client = None
        try:
            if not self._uri:
                raise ConfigurationError("MONGO_URI is not set")
            client = self._client_factory(
                self._uri,
                serverSelectionTimeoutMS=self._server_selection_timeout_ms,
                socketTimeoutMS=self._socket_timeout_ms,
            )
            await client.admin.command("ping")
            database = client.get_default_database(default=self._database_name)
        except Exception as exc:
            self.last_error = exc
            if client is not None:
                await client.close()
            self._transition(ConnectionState.ERROR)
            raise

        self._client = client
        self._database = database
        self.last_error = None
        self._budget.reset(self._max_retries)
        self._transition(ConnectionState.CONNECTED)
        logger.info(
            "MongoDB connected (database=%s, attempt %d)",
            database.name,
            self.attempts,
        )

    def _before_retry(self, retry_state: RetryCallState) -> None:
        self._budget.consume()
        self._log_retry(retry_state)

    async def _backoff(self, seconds: float) -> None:
        """Sleep `seconds` via the injected primitive, waking early on close()."""
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            await asyncio.wait({sleeper, closing}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, closing):
                if not pending.done():
                    pending.cancel()

    # ── Close ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """
        Release the client. Idempotent.

        How:
            1. Mark closed so no new attempt starts and a pending backoff wakes
            2. Let an in-flight attempt finish (bounded by the selection timeout)
            3. Close the client if one is held (CONNECTED → DISCONNECTED)
        """
        if self._closed:
            logger.debug("Database manager already closed")
            return
        self._closed = True
        self._closing.set()

        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight})

        if self._client is not None:
            client, self._client = self._client, None
            self._database = None
            await client.close()
            self._transition(ConnectionState.DISCONNECTED)
            logger.info("MongoDB connection closed")
