"""
Application configuration.

Settings are read from the environment (and an optional `.env` file) with
defaults suitable for a local Postgres instance.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the load simulator."""

    # Application server
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 5000
    APP_DEBUG: bool = True
    APP_RELOAD: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    # Postgres store
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DATABASE: str = "load_simulator"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_POOL_MIN_SIZE: int = 1
    POSTGRES_POOL_MAX_SIZE: int = 10
    # 0 means callers queue without limit when the pool is saturated
    POSTGRES_POOL_QUEUE_LIMIT: int = 0
    POSTGRES_CONNECT_ON_STARTUP: bool = True

    # Operator submissions
    QUERY_TIMEOUT_SECONDS: float = 30.0

    # Autonomous generator
    GENERATOR_ENABLED: bool = True
    GENERATOR_PERIOD_MS: int = 2000

    # Viewer sessions
    METRICS_WINDOW_SIZE: int = 20
    HISTORY_CAPACITY: int = 100
    HISTORY_INCLUDE_GENERATED: bool = False
    LATENCY_ALERT_THRESHOLD_MS: int = 10
    SUBSCRIBER_QUEUE_SIZE: int = 100

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def generator_period_seconds(self) -> float:
        return self.GENERATOR_PERIOD_MS / 1000.0


settings = Settings()
