"""
Expense Tracker API — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pymongo is replaced by an in-memory fake client factory and the retry
       clock by a recording sleep, so no test needs a database or waits
       for real backoff delays.

Fixture Hierarchy (all function-scoped):
    ├── make_settings: Build Settings with test defaults + overrides
    ├── client_factory: Fake AsyncMongoClient factory (scriptable failures)
    ├── recording_sleep: Backoff sleep that records delays instead of waiting
    ├── database_manager: DatabaseManager wired to the two fakes above
    ├── make_application: Application around a given settings + fake factory
    ├── application: Connected Application with its FastAPI app
    ├── disconnected_application: Same, but the database never connected
    ├── test_client / disconnected_client: HTTPX AsyncClient over ASGI
    └── auth_headers: Authorization header for a freshly issued token
"""

import os
from typing import Any, Dict
from unittest.mock import MagicMock

# Override settings for testing BEFORE any app imports
os.environ["NODE_ENV"] = "development"
os.environ["MONGO_URI"] = "mongodb://localhost:27017/expense_tracker_test"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from app.application import Application
from app.config import Settings
from app.database import DatabaseManager
from app.main import create_app
from app.services.user_service import UserService

from fakes import TEST_URI, FakeClientFactory, RecordingSleep


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_settings():
    """
    Build Settings without reading .env.

    Usage:
        settings = make_settings(environment="production", client_url="https://x")
    """

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "environment": "development",
            "mongo_uri": TEST_URI,
            "jwt_secret": "test-secret-not-real",
            "db_max_retries": 2,
            "db_retry_delay": 0.5,
            "shutdown_timeout": 1.0,
            "log_level": "WARNING",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def database_manager(settings, client_factory, recording_sleep) -> DatabaseManager:
    return DatabaseManager.from_settings(
        settings, client_factory=client_factory, sleep=recording_sleep
    )


def build_application(settings: Settings, manager: DatabaseManager) -> Application:
    application = Application(
        settings,
        database=manager,
        users=UserService(password_iterations=1_000),
        terminate=MagicMock(name="terminate"),
    )
    create_app(application)
    return application


@pytest.fixture
def make_application():
    """Build an Application around fresh fakes: make_application(settings, factory)."""

    def _make(settings: Settings, factory: FakeClientFactory) -> Application:
        manager = DatabaseManager.from_settings(
            settings, client_factory=factory, sleep=RecordingSleep()
        )
        return build_application(settings, manager)

    return _make


@pytest_asyncio.fixture
async def application(settings, database_manager):
    """Application whose database manager is already connected."""
    app = build_application(settings, database_manager)
    await database_manager.connect()
    await app.users.ensure_indexes(database_manager.database)
    yield app
    await database_manager.close()


@pytest_asyncio.fixture
async def disconnected_application(settings, database_manager):
    """Application whose database never connected (degraded)."""
    app = build_application(settings, database_manager)
    yield app
    await database_manager.close()


def _client_for(app: Application) -> AsyncClient:
    # raise_app_exceptions=False: the 500 handler test needs the response, not the re-raise
    transport = ASGITransport(app=app.api, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def test_client(application):
    """
    HTTPX AsyncClient talking to the connected application.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    async with _client_for(application) as client:
        yield client


@pytest_asyncio.fixture
async def disconnected_client(disconnected_application):
    async with _client_for(disconnected_application) as client:
        yield client


@pytest.fixture
def auth_headers(application) -> Dict[str, str]:
    token = application.verifier.issue(str(ObjectId()))
    return {"Authorization": f"Bearer {token}"}
