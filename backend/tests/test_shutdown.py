"""
Expense Tracker API — Shutdown Coordinator Tests
==================================================

What:  Tests for the RUNNING → DRAINING → CLOSED state machine and the exit
       codes it produces.
How:   Fake listener and database record the drain order; the listener can
       hold an "in-flight request" open with an asyncio.Event.

What we test:
    ✅ Signal during an in-flight request: exit waits for it, then code 0
    ✅ Listener drains before the database closes
    ✅ Failed or timed-out drain → exit code 1, database still closed once
    ✅ Repeated shutdown requests are ignored
    ✅ Fatal error: exit 1 while running, logged only while draining
    ✅ SIGINT/SIGTERM handlers and the loop exception handler
"""

import asyncio
import signal
from unittest.mock import MagicMock

import pytest

from app.shutdown import ShutdownCoordinator, ShutdownState


class FakeListener:
    def __init__(self, calls, in_flight=None, error=None):
        self.calls = calls
        self.in_flight = in_flight
        self.error = error

    async def drain(self):
        self.calls.append("listener:start")
        if self.in_flight is not None:
            await self.in_flight.wait()
        if self.error is not None:
            raise self.error
        self.calls.append("listener:done")


class FakeDatabase:
    def __init__(self, calls, stuck=None):
        self.calls = calls
        self.stuck = stuck

    async def close(self):
        self.calls.append("database")
        if self.stuck is not None:
            await self.stuck.wait()


@pytest.fixture
def calls():
    return []


@pytest.fixture
def terminate():
    return MagicMock(name="terminate")


def make_coordinator(
    calls, terminate, listener=None, timeout=1.0, database=None, close_timeout=1.0
):
    return ShutdownCoordinator(
        database or FakeDatabase(calls),
        listener,
        timeout=timeout,
        close_timeout=close_timeout,
        terminate=terminate,
    )


class TestDrain:

    @pytest.mark.asyncio
    async def test_signal_waits_for_in_flight_request(self, calls, terminate):
        request_done = asyncio.Event()
        coordinator = make_coordinator(calls, terminate, FakeListener(calls, request_done))

        coordinator.request_shutdown("SIGTERM")
        waiter = asyncio.ensure_future(coordinator.wait())
        for _ in range(10):
            await asyncio.sleep(0)

        assert coordinator.state is ShutdownState.DRAINING
        assert not coordinator.accepting_requests
        assert not waiter.done()
        assert "database" not in calls

        request_done.set()

        assert await waiter == 0
        assert coordinator.state is ShutdownState.CLOSED
        assert calls == ["listener:start", "listener:done", "database"]
        terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_shutdown_without_listener_closes_database(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)

        assert await coordinator.shutdown("test") == 0
        assert calls == ["database"]
        assert coordinator.exit_code == 0

    @pytest.mark.asyncio
    async def test_failed_drain_exits_with_1(self, calls, terminate):
        listener = FakeListener(calls, error=RuntimeError("socket close failed"))
        coordinator = make_coordinator(calls, terminate, listener)

        assert await coordinator.shutdown("SIGINT") == 1
        assert coordinator.state is ShutdownState.CLOSED
        assert calls == ["listener:start", "database"]

    @pytest.mark.asyncio
    async def test_drain_timeout_exits_with_1(self, calls, terminate):
        stuck = asyncio.Event()
        coordinator = make_coordinator(
            calls, terminate, FakeListener(calls, stuck), timeout=0.05
        )

        assert await coordinator.shutdown("SIGTERM") == 1
        assert calls == ["listener:start", "database"]

    @pytest.mark.asyncio
    async def test_database_close_after_timeout_is_bounded(self, calls, terminate):
        coordinator = make_coordinator(
            calls,
            terminate,
            FakeListener(calls, asyncio.Event()),
            timeout=0.05,
            database=FakeDatabase(calls, stuck=asyncio.Event()),
            close_timeout=0.05,
        )

        code = await asyncio.wait_for(coordinator.shutdown("SIGTERM"), timeout=1)

        assert code == 1
        assert calls == ["listener:start", "database"]
        assert coordinator.state is ShutdownState.CLOSED

    @pytest.mark.asyncio
    async def test_hung_database_close_is_not_retried(self, calls, terminate):
        coordinator = make_coordinator(
            calls,
            terminate,
            FakeListener(calls),
            timeout=0.05,
            database=FakeDatabase(calls, stuck=asyncio.Event()),
        )

        assert await coordinator.shutdown("SIGTERM") == 1
        assert calls == ["listener:start", "listener:done", "database"]

    @pytest.mark.asyncio
    async def test_second_request_is_ignored(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)

        first = coordinator.request_shutdown("SIGTERM")
        second = coordinator.request_shutdown("SIGINT")

        assert second is first
        assert await coordinator.wait() == 0
        assert calls == ["database"]
        assert coordinator.request_shutdown("SIGTERM") is first


class TestFatal:

    @pytest.mark.asyncio
    async def test_fatal_while_running_exits_with_1(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)

        coordinator.fatal(RuntimeError("boom"), where="test")

        assert coordinator.state is ShutdownState.CLOSED
        assert await coordinator.wait() == 1
        terminate.assert_called_once_with(1)
        assert calls == []

    @pytest.mark.asyncio
    async def test_fatal_when_installed_leaves_exit_to_runner(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)
        coordinator.install()
        try:
            coordinator.fatal(RuntimeError("boom"))
        finally:
            coordinator.uninstall()

        assert await coordinator.wait() == 1
        terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_fatal_during_drain_is_only_logged(self, calls, terminate):
        request_done = asyncio.Event()
        coordinator = make_coordinator(calls, terminate, FakeListener(calls, request_done))
        coordinator.request_shutdown("SIGTERM")

        coordinator.fatal(RuntimeError("late failure"))
        assert coordinator.state is ShutdownState.DRAINING

        request_done.set()
        assert await coordinator.wait() == 0
        terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_fatal_after_close_is_only_logged(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)
        await coordinator.shutdown()

        coordinator.fatal(RuntimeError("too late"))

        assert coordinator.exit_code == 0
        terminate.assert_not_called()


class TestProcessHooks:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    async def test_signal_starts_drain(self, calls, terminate, sig):
        coordinator = make_coordinator(calls, terminate)
        coordinator.install()
        try:
            signal.raise_signal(sig)
            assert await asyncio.wait_for(coordinator.wait(), timeout=1.0) == 0
        finally:
            coordinator.uninstall()

        assert calls == ["database"]

    @pytest.mark.asyncio
    async def test_loop_exception_handler_applies_fatal_policy(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)
        loop = MagicMock()

        coordinator.handle_loop_exception(
            loop, {"message": "Task exception was never retrieved", "exception": ValueError("x")}
        )

        assert coordinator.exit_code == 1
        loop.default_exception_handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_loop_context_without_exception_goes_to_default(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)
        loop = MagicMock()
        context = {"message": "slow callback"}

        coordinator.handle_loop_exception(loop, context)

        loop.default_exception_handler.assert_called_once_with(context)
        assert coordinator.state is ShutdownState.RUNNING


class TestStateMachine:

    def test_state_never_moves_backwards(self, calls, terminate):
        coordinator = make_coordinator(calls, terminate)
        coordinator._advance(ShutdownState.DRAINING)

        with pytest.raises(RuntimeError):
            coordinator._advance(ShutdownState.RUNNING)
        with pytest.raises(RuntimeError):
            coordinator._advance(ShutdownState.DRAINING)

        coordinator._advance(ShutdownState.CLOSED)
        assert coordinator.state is ShutdownState.CLOSED
