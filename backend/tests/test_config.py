"""
Expense Tracker API — Configuration Tests
==========================================

What:  Tests for Settings: environment parsing, CORS origins, production
       validation and immutability.
How:   Settings are built with `_env_file=None`; environment variables are
       set per test with monkeypatch.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.config import DEV_JWT_SECRET, Environment, Settings
from app.exceptions import ConfigError


class TestEnvironment:

    def test_defaults(self, monkeypatch):
        for name in ("NODE_ENV", "MONGO_URI", "JWT_SECRET", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.port == 5001
        assert settings.environment is Environment.DEVELOPMENT
        assert settings.mongo_uri is None
        assert settings.db_max_retries == 5
        assert settings.db_retry_delay == 5.0
        assert settings.shutdown_timeout == 10.0
        assert settings.max_body_size == 10 * 1024 * 1024

    def test_node_env_selects_production(self, monkeypatch):
        monkeypatch.setenv("NODE_ENV", "Production")

        assert Settings(_env_file=None).is_production

    def test_unknown_environment_rejected(self, monkeypatch):
        monkeypatch.setenv("NODE_ENV", "staging")

        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)

    def test_blank_mongo_uri_is_unset(self, make_settings):
        assert make_settings(mongo_uri="   ").mongo_uri is None

    def test_log_level_normalized(self, make_settings):
        assert make_settings(log_level="debug").log_level == "DEBUG"
        with pytest.raises(PydanticValidationError):
            make_settings(log_level="chatty")

    def test_settings_are_frozen(self, settings):
        with pytest.raises(PydanticValidationError):
            settings.port = 8080


class TestAllowedOrigins:

    def test_development_allows_any_origin(self, settings):
        assert settings.allowed_origins == frozenset({"*"})

    def test_production_uses_client_url_list(self, make_settings):
        settings = make_settings(
            environment="production",
            client_url="https://app.example.com, https://admin.example.com,",
        )

        assert settings.allowed_origins == frozenset(
            {"https://app.example.com", "https://admin.example.com"}
        )


class TestValidateRequired:

    def test_development_never_raises(self, make_settings):
        make_settings(mongo_uri=None, jwt_secret=DEV_JWT_SECRET).validate_required()

    def test_production_lists_every_problem(self, make_settings):
        settings = make_settings(
            environment="production", mongo_uri=None, jwt_secret=DEV_JWT_SECRET
        )

        with pytest.raises(ConfigError) as exc_info:
            settings.validate_required()

        problems = exc_info.value.context["problems"]
        assert len(problems) == 3
        assert any("MONGO_URI" in p for p in problems)
        assert any("CLIENT_URL" in p for p in problems)
        assert any("JWT_SECRET" in p for p in problems)

    def test_complete_production_config(self, make_settings):
        make_settings(
            environment="production",
            client_url="https://app.example.com",
            jwt_secret="a-real-secret",
        ).validate_required()
