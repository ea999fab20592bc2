"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    suggestion_default_duration_minutes: int
    suggestion_max_results: int
    seed_demo_data: bool
    demo_random_seed: int
    demo_poll_days: int
    session_token_bytes: int
    session_ttl_minutes: int
    max_sessions_per_user: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; call ``get_settings.cache_clear()`` to reload."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Rehearsal Scheduler"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/rehearsals.db")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        suggestion_default_duration_minutes=_env_int(
            "SUGGESTION_DEFAULT_DURATION_MINUTES", 120
        ),
        suggestion_max_results=_env_int("SUGGESTION_MAX_RESULTS", 10),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        demo_random_seed=_env_int("DEMO_RANDOM_SEED", 42),
        demo_poll_days=_env_int("DEMO_POLL_DAYS", 7),
        session_token_bytes=_env_int("SESSION_TOKEN_BYTES", 32),
        session_ttl_minutes=_env_int("SESSION_TTL_MINUTES", 720),
        max_sessions_per_user=_env_int("MAX_SESSIONS_PER_USER", 5),
    )
