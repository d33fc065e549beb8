"""
Tests for settings loading
"""

import pytest
from pydantic import ValidationError

from souq.api.config import APISettings
from souq.config import Settings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SOUQ_LEDGER_DIFFICULTY", "3")
        monkeypatch.setenv("SOUQ_REQUIRE_CERTIFICATION", "false")
        monkeypatch.setenv("SOUQ_SEAL_INTERVAL", "15")

        settings = Settings()

        assert settings.ledger_difficulty == 3
        assert settings.require_certification is False
        assert settings.seal_interval == 15.0

    def test_celery_defaults_to_redis(self, monkeypatch):
        monkeypatch.delenv("CELERY_BROKER_URL", raising=False)
        monkeypatch.delenv("CELERY_RESULT_BACKEND", raising=False)

        settings = Settings(redis_url="redis://cache:6379/2")

        assert settings.celery_broker_url == "redis://cache:6379/2"
        assert settings.celery_result_backend == "redis://cache:6379/2"

    def test_difficulty_bounds(self):
        with pytest.raises(ValidationError):
            Settings(ledger_difficulty=7)

    def test_singleton(self):
        assert get_settings() is get_settings()


class TestAPISettings:
    def test_cors_origins_comma_separated(self):
        settings = APISettings(cors_origins="http://a.test, http://b.test")

        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_cors_origins_json(self):
        settings = APISettings(cors_origins='["http://a.test"]')

        assert settings.cors_origins == ["http://a.test"]

    def test_ledger_page_limit(self):
        assert APISettings().max_blocks_per_page == 100
        assert APISettings(max_blocks_per_page=5).max_blocks_per_page == 5
