"""
Scheduling engine configuration.

Uses Pydantic Settings so every tunable can come from the environment or .env.
"""
import os
import logging
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

load_dotenv()


class SchedulingSettings(BaseSettings):
    """Validated engine configuration."""

    # Search tuning
    SUGGESTION_LIMIT: int = 5
    RESOLVER_STEP_MINUTES: int = 15
    DEFAULT_MAX_TIME_SHIFT: int = 60
    DEFAULT_MAX_WORKLOAD: int = 8

    # Input validation bounds (minutes)
    MIN_SESSION_DURATION: int = 15
    MAX_SESSION_DURATION: int = 480

    # Backends
    STORE_BACKEND: str = "memory"  # "memory" | "supabase"
    LOCK_BACKEND: str = "memory"  # "memory" | "redis"

    # Redis (distributed therapist locks)
    REDIS_URL: str = "redis://localhost:6379"
    LOCK_TTL_MS: int = 5000
    LOCK_ACQUIRE_RETRIES: int = 8
    LOCK_BACKOFF_MS: int = 50

    # Supabase
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_SCHEMA: str = "healthcare"

    ENVIRONMENT: str = "development"

    @field_validator(
        'SUGGESTION_LIMIT', 'RESOLVER_STEP_MINUTES', 'DEFAULT_MAX_WORKLOAD',
        'MIN_SESSION_DURATION', 'MAX_SESSION_DURATION', 'LOCK_TTL_MS', 'LOCK_BACKOFF_MS'
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator('DEFAULT_MAX_TIME_SHIFT', 'LOCK_ACQUIRE_RETRIES')
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} cannot be negative")
        return v

    @field_validator('STORE_BACKEND')
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        if v not in ("memory", "supabase"):
            raise ValueError("STORE_BACKEND must be 'memory' or 'supabase'")
        return v

    @field_validator('LOCK_BACKEND')
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError("LOCK_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator('REDIS_URL')
    @classmethod
    def validate_redis_not_localhost_in_prod(cls, v: str) -> str:
        """Ensure Redis is not localhost in production."""
        env = os.getenv("ENVIRONMENT", "development")
        if "localhost" in v and env == "production":
            raise ValueError("REDIS_URL cannot point to localhost in production")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> SchedulingSettings:
    """Return the process-wide settings instance."""
    settings = SchedulingSettings()
    logger.debug(
        f"Scheduling settings loaded (store={settings.STORE_BACKEND}, lock={settings.LOCK_BACKEND})"
    )
    return settings
