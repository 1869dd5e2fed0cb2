"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Cache / queue
    redis_url: str | None = None
    queue_name: str = "ai-generation"

    # Language model
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"
    ai_use_mock: bool = False
    ai_timeout_seconds: float = 120.0
    ai_max_retries: int = 3
    ai_max_tokens: int = 3000
    ai_temperature: float = 0.7
    itinerary_language: str = "English"

    # Monthly quota
    monthly_generation_limit: int = 10
    limit_timezone: str = "UTC"

    # Queue worker (seconds)
    job_timeout_seconds: int = 120
    job_tries: int = 2
    job_backoff_seconds: list[int] = [10, 30]
    worker_concurrency: int = 2

    # Stuck generation cleanup (seconds)
    stuck_buffer_seconds: int = 60
    reaper_interval_seconds: int = 300

    # Rate limiting (requests per minute)
    generation_requests_per_min: int = 3

    # Logging
    log_level: str = "INFO"

    @property
    def stuck_after_seconds(self) -> int:
        """Age after which an in-flight attempt is considered stuck."""
        return self.job_timeout_seconds + self.stuck_buffer_seconds


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
