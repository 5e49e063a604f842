from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class AppConfig(BaseSettings):
    """Application configuration settings."""

    # Environment
    app_env: str = Field("development")
    app_debug: bool = Field(False)
    app_host: str = Field("0.0.0.0")
    app_port: int = Field(3000)

    # Logging
    log_level: str = Field("INFO")
    log_file: Optional[str] = Field(None)

    # Message store
    store_type: str = Field("in_memory")
    redis_url: Optional[str] = Field(None)

    # Relay
    history_window: int = Field(11)

    # Callers
    premium_user_ids: str = Field("")
    session_cookie_name: str = Field("beet_session")
    session_cookie_secure: bool = Field(False)

    @field_validator("app_env")
    def validate_app_env(cls, value: str) -> str:
        if value not in ["development", "staging", "production"]:
            raise ValueError("APP_ENV must be development, staging, or production")
        return value

    @field_validator("store_type")
    def validate_store_type(cls, value: str) -> str:
        if value not in ["in_memory", "redis"]:
            raise ValueError("STORE_TYPE must be in_memory or redis")
        return value

    @field_validator("log_level")
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("LOG_LEVEL must be a valid Loguru level")
        return level

    @field_validator("history_window")
    def validate_history_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("HISTORY_WINDOW must be positive")
        return value

    @model_validator(mode="after")
    def require_redis_url(self) -> "AppConfig":
        if self.store_type == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when STORE_TYPE is redis")
        return self

    @property
    def premium_users(self) -> frozenset[str]:
        """User identifiers granted access to premium models."""
        return frozenset(
            part.strip().lower() for part in self.premium_user_ids.split(",") if part.strip()
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_app_config() -> AppConfig:
    """Return a cached application configuration instance."""

    return AppConfig()
