from functools import lru_cache

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class ProviderConfig(BaseSettings):
    """Configuration for the upstream chat-completion provider.

    The provider is any OpenAI-compatible router exposing
    ``POST {base_url}/chat/completions`` with streaming support.  The
    Hugging Face inference router is used by default.
    """

    api_key: str = Field(
        "",
        validation_alias=AliasChoices("HUGGING_FACE_API_KEY", "PROVIDER_API_KEY"),
    )
    base_url: str = Field("https://router.huggingface.co/v1", alias="PROVIDER_BASE_URL")
    timeout: float = Field(60.0, alias="PROVIDER_TIMEOUT")
    connect_timeout: float = Field(10.0, alias="PROVIDER_CONNECT_TIMEOUT")

    @field_validator("base_url")
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("timeout", "connect_timeout")
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Provider timeouts must be positive")
        return value

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


@lru_cache()
def get_provider_config() -> ProviderConfig:
    """Return a cached provider configuration."""

    return ProviderConfig()
