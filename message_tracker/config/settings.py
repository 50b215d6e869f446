"""
Application settings and configuration.
All values can be overridden from environment variables or a .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage backend: "sqlite", "redis" or "memory"
    kv_backend: str = "sqlite"
    redis_url: str = "redis://localhost:6379/0"

    # Database - Use DATA_DIR for a persistent volume
    data_dir: str = "."

    @property
    def database_url(self) -> str:
        """SQLite database URL inside the data directory."""
        return f"sqlite+aiosqlite:///{self.data_dir}/message_tracker.db"

    # Deduplication
    dedup_expiration_ttl: int = Field(86400, ge=1)  # 24 hours
    dedup_key_prefix: str = Field("processed_msg", min_length=1)
    dedup_retry_window_seconds: int = Field(300, ge=0)  # 5 minutes

    # Expired entry purge job (SQL backend only)
    purge_interval_minutes: int = Field(10, ge=1)

    # Application Settings
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
