"""Application configuration with environment-specific profiles.

Supports dev, staging, production and test environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    jwt_secret: str = "jwt-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 480
    log_level: str = "INFO"

    # Leaderboard scoring (points = (workouts*W + wins*C) * M^streak)
    points_per_workout: int = 10
    points_per_competition_win: int = 20
    streak_multiplier: float = 2.0

    # Competition / duel defaults
    competition_duration_days: int = 7
    competition_points_per_workout: int = 1
    duel_duration_days: int = 7
    max_duration_days: int = 90

    # Pagination
    leaderboard_default_limit: int = 50
    leaderboard_max_limit: int = 200

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    challenge_rate_limit: str = "20/minute"

    # Scheduler endpoint; empty disables it
    job_token: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "jwt_expire_minutes": 1440,
    },
    "staging": {
        "log_level": "INFO",
        "jwt_expire_minutes": 480,
    },
    "production": {
        "log_level": "WARNING",
        "jwt_expire_minutes": 240,
        "challenge_rate_limit": "10/minute",
    },
    "test": {
        "log_level": "WARNING",
        "jwt_expire_minutes": 60,
        "rate_limit_enabled": False,
    },
}


def get_database_url() -> str:
    """Resolve database URL from the environment or a local default.

    Resolution order:
    1. DATABASE_URL environment variable
    2. Local default for common dev setups
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "postgresql+psycopg2://localhost:5432/uplift"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        jwt_secret=os.getenv("JWT_SECRET", "jwt-change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", str(profile.get("jwt_expire_minutes", 480)))),
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        points_per_workout=int(os.getenv("POINTS_PER_WORKOUT", "10")),
        points_per_competition_win=int(os.getenv("POINTS_PER_COMPETITION_WIN", "20")),
        streak_multiplier=float(os.getenv("STREAK_MULTIPLIER", "2")),
        competition_duration_days=int(os.getenv("COMPETITION_DURATION_DAYS", "7")),
        competition_points_per_workout=int(os.getenv("COMPETITION_POINTS_PER_WORKOUT", "1")),
        duel_duration_days=int(os.getenv("DUEL_DURATION_DAYS", "7")),
        max_duration_days=int(os.getenv("MAX_DURATION_DAYS", "90")),
        leaderboard_default_limit=int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "50")),
        leaderboard_max_limit=int(os.getenv("LEADERBOARD_MAX_LIMIT", "200")),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", profile.get("rate_limit_enabled", True)),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        challenge_rate_limit=os.getenv("CHALLENGE_RATE_LIMIT", profile.get("challenge_rate_limit", "20/minute")),
        job_token=os.getenv("JOB_TOKEN", ""),
    )
