"""Application configuration via Pydantic Settings (12-Factor App compliance).

Centralized environment-driven configuration for:
- Persistent trade store (SQLAlchemy async URL)
- Remote cache tier (Redis) and local cache sizing
- Backtest defaults (capital, commission, bar interval)
- Telemetry endpoint (OpenTelemetry)

All settings can be overridden via environment variables or .env file.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # --- App Info ---
    PROJECT_NAME: str = "tickreplay"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Persistent Store (read-only) ---
    DATABASE_URL: str = "sqlite+aiosqlite:///data/ticks.db"
    DATABASE_POOL_RECYCLE: int = 1800  # seconds

    # --- Remote Cache Tier (Redis) ---
    REDIS_URL: str = "redis://127.0.0.1:6379"
    REDIS_CACHE_ENABLED: bool = True
    REDIS_SOCKET_TIMEOUT: float = 2.0

    # --- Cache Policy ---
    CACHE_LOCAL_CAPACITY: int = 50  # entries, not bytes
    CACHE_LOCAL_TTL_SECONDS: float = 300.0
    CACHE_REMOTE_TTL_SECONDS: int = 600
    CACHE_KEY_PREFIX: str = "tickreplay"
    CACHE_GENERATION: int = 1

    # --- Backtest Defaults ---
    DEFAULT_BAR_INTERVAL: str = "1m"
    DEFAULT_INITIAL_CAPITAL: str = "10000"
    DEFAULT_COMMISSION_RATE: str = "0.001"

    # --- Telemetry ---
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""

    @field_validator("CACHE_LOCAL_CAPACITY", "CACHE_REMOTE_TTL_SECONDS")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


settings = Settings()
