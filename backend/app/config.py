"""Runtime configuration for the curriculum registry."""

# purpose: single settings object injected at startup (engine, notifier, app factory)
# status: active

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings.

    Values are read once per process through :func:`get_settings`; nothing
    else in the package consults ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./registry.db"
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    testing: bool = False
    smtp_server: str | None = None
    email_from: str = "noreply@example.com"
    sentry_dsn: str | None = None

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    rate_limit: str = "120/minute"

    reject_reason_min: int = 10
    reject_reason_max: int = 500
    max_semester: int = 10


@lru_cache
def get_settings() -> Settings:
    return Settings()
