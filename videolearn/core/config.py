"""Application configuration from environment."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from env / .env."""

    app_name: str = "VideoLearn Milestone Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Database (async driver; alembic converts to a sync url)
    database_url: str = "sqlite+aiosqlite:///./videolearn.db"

    # JWT issued by the auth service; we only verify it
    secret_key: str = "change-me-in-production-use-env"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 1 day

    # State cache
    cache_ttl_seconds: float = 30.0

    # Grading defaults
    default_retry_limit: int = 3
    default_pass_threshold: float = 0.7
    semantic_match_timeout_seconds: float = 2.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "VIDEOLEARN_"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
