"""Engine configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable engine settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Weekly volume guard
    volume_guard_max_pct: float = 20.0
    duration_floor_min: int = 30

    # Preview cache
    preview_ttl_hours: int = 24

    # Readiness policy
    readiness_strict: bool = False
    readiness_retry_after_sec: int = 300

    # Decisions: "clamp" rescales modified changes, "block" rejects violations
    decision_guard_mode: str = "clamp"

    store_timeout_sec: float = 5.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "store_timeout_sec": 10.0,
    },
    "staging": {
        "log_level": "INFO",
        "store_timeout_sec": 5.0,
    },
    "production": {
        "log_level": "WARNING",
        "store_timeout_sec": 3.0,
        "readiness_strict": True,
    },
}

_DECISION_GUARD_MODES = ("clamp", "block")


def get_database_url() -> str:
    """Resolve database URL from env var or local default.

    Resolution order:
    1. DATABASE_URL environment variable
    2. Local default for common dev setups
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "postgresql+psycopg2://localhost:5432/adaptcore"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    guard_mode = os.getenv("DECISION_GUARD_MODE", "clamp").strip().lower()
    if guard_mode not in _DECISION_GUARD_MODES:
        guard_mode = "clamp"

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        volume_guard_max_pct=float(os.getenv("VOLUME_GUARD_MAX_PCT", "20")),
        duration_floor_min=int(os.getenv("DURATION_FLOOR_MIN", "30")),
        preview_ttl_hours=int(os.getenv("PREVIEW_TTL_HOURS", "24")),
        readiness_strict=_env_flag("READINESS_STRICT", profile.get("readiness_strict", False)),
        readiness_retry_after_sec=int(os.getenv("READINESS_RETRY_AFTER_SEC", "300")),
        decision_guard_mode=guard_mode,
        store_timeout_sec=float(os.getenv("STORE_TIMEOUT_SEC", str(profile.get("store_timeout_sec", 5.0)))),
    )
