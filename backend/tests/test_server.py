"""
Expense Tracker API — Process Runner Integration Tests
========================================================

What:  Application.run() with a real uvicorn listener on a local port.
How:   The database is still the fake client; shutdown is requested through
       the coordinator exactly as the SIGTERM handler does.

What we test:
    ✅ Serves requests, then exits with code 0 on a shutdown request
    ✅ An in-flight request completes before the process exits
"""

import asyncio
import socket

import httpx
import pytest

from app.database import ConnectionState

from fakes import FakeClientFactory


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def wait_until_listening(application, attempts=100):
    for _ in range(attempts):
        listener = application.listener
        if listener is not None and listener.running and listener._server.started:
            return
        await asyncio.sleep(0.05)
    raise AssertionError("listener never started")


@pytest.fixture
def served(make_settings, make_application):
    port = free_port()
    settings = make_settings(host="127.0.0.1", port=port, shutdown_timeout=5.0)
    return make_application(settings, FakeClientFactory()), f"http://127.0.0.1:{port}"


class TestRun:

    @pytest.mark.asyncio
    async def test_serves_until_shutdown(self, served):
        application, base_url = served
        runner = asyncio.ensure_future(application.run())
        await wait_until_listening(application)

        async with httpx.AsyncClient(base_url=base_url) as client:
            response = await client.get("/health")
        assert response.status_code == 200

        application.coordinator.request_shutdown("SIGTERM")

        assert await asyncio.wait_for(runner, timeout=10) == 0
        assert application.database.current_state() is ConnectionState.DISCONNECTED
        application.coordinator._terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_in_flight_request_finishes_before_exit(self, served):
        application, base_url = served
        entered, release = asyncio.Event(), asyncio.Event()

        async def slow():
            entered.set()
            await release.wait()
            return {"done": True}

        application.api.add_api_route("/slow", slow, methods=["GET"])
        runner = asyncio.ensure_future(application.run())
        await wait_until_listening(application)

        async with httpx.AsyncClient(base_url=base_url, timeout=10) as client:
            request = asyncio.ensure_future(client.get("/slow"))
            await asyncio.wait_for(entered.wait(), timeout=5)

            application.coordinator.request_shutdown("SIGTERM")
            await asyncio.sleep(0.2)
            assert not runner.done()

            release.set()
            response = await request

        assert response.status_code == 200
        assert response.json() == {"done": True}
        assert await asyncio.wait_for(runner, timeout=10) == 0
