"""Tests for configuration module."""

from __future__ import annotations

import pytest

from adaptcore.config import Settings, _ENV_PROFILES, get_database_url, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_dataclass():
    s = Settings(database_url="postgres://localhost/test")
    assert s.database_url == "postgres://localhost/test"
    assert s.app_env == "dev"
    assert s.volume_guard_max_pct == 20.0
    assert s.duration_floor_min == 30
    assert s.preview_ttl_hours == 24
    assert s.decision_guard_mode == "clamp"


def test_settings_frozen():
    s = Settings(database_url="x")
    with pytest.raises(AttributeError):
        s.database_url = "y"


def test_settings_is_production():
    s = Settings(database_url="x", app_env="production")
    assert s.is_production is True
    assert s.is_dev is False


def test_get_database_url_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://from-env/db")
    assert get_database_url() == "postgres://from-env/db"


def test_get_database_url_default(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert "postgresql" in get_database_url()


def test_env_profiles_exist():
    assert set(_ENV_PROFILES) == {"dev", "staging", "production"}


def test_production_profile_requires_readiness(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("READINESS_STRICT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    s = get_settings()
    assert s.readiness_strict is True
    assert s.log_level == "WARNING"
    assert s.store_timeout_sec == 3.0


def test_dev_profile_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("READINESS_STRICT", raising=False)
    s = get_settings()
    assert s.log_level == "DEBUG"
    assert s.readiness_strict is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("VOLUME_GUARD_MAX_PCT", "15")
    monkeypatch.setenv("READINESS_STRICT", "yes")
    monkeypatch.setenv("DECISION_GUARD_MODE", "BLOCK")
    s = get_settings()
    assert s.volume_guard_max_pct == 15.0
    assert s.readiness_strict is True
    assert s.decision_guard_mode == "block"


def test_unknown_guard_mode_falls_back_to_clamp(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("DECISION_GUARD_MODE", "warn")
    assert get_settings().decision_guard_mode == "clamp"
