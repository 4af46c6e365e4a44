from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./queue_service.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Queue Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Ticket priority band limits (higher serves first)
    MIN_PRIORITY: int = 1  # Default priority for new tickets
    MAX_PRIORITY: int = 10

    # Transient storage failures are retried at the HTTP boundary only
    STORAGE_RETRY_ATTEMPTS: int = 3
    STORAGE_RETRY_BASE_DELAY: float = 0.05  # Seconds, doubled per attempt

    # Lifecycle event stream for notification / crowd services
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    EVENT_CHANNEL: str = "queue.events"
    EVENT_PUBLISH_TIMEOUT: float = 1.0  # Seconds before a publish is abandoned
    EVENT_BUFFER_SIZE: int = 1000  # In-memory publisher keeps this many events

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    CAPACITY_AUDIT_INTERVAL_MINUTES: int = 10

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('MIN_PRIORITY')
    @classmethod
    def validate_min_priority(cls, v):
        if v < 0:
            raise ValueError("MIN_PRIORITY cannot be negative")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
