"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Blob Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://blob@localhost:5432/blob"

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    reasoning_timeout_seconds: float = 30.0
    reasoning_max_attempts: int = 3
    reasoning_backoff_min_seconds: float = 1.0
    reasoning_backoff_max_seconds: float = 20.0

    min_onboarding_chars: int = 20
    xp_per_level: int = 100
    goal_completion_bonus_xp: int = 100
    schedule_days_ahead: int = 3

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "blob"

    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    refresh_job_hour: int = 5
    refresh_job_minute: int = 0
    jobs_run_on_startup: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
