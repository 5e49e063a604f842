from __future__ import annotations

import pytest
from pydantic import ValidationError

from beet.config.app_config import AppConfig
from beet.config.provider_config import ProviderConfig


def test_premium_user_ids_are_normalised() -> None:
    config = AppConfig(premium_user_ids=" Alice,bob ,, CAROL")

    assert config.premium_users == frozenset({"alice", "bob", "carol"})


def test_log_level_is_upper_cased() -> None:
    assert AppConfig(log_level="debug").log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"app_env": "qa"},
        {"store_type": "sqlite"},
        {"log_level": "verbose"},
        {"history_window": 0},
        {"store_type": "redis", "redis_url": None},
    ],
)
def test_invalid_app_settings_are_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        AppConfig(**overrides)


def test_redis_store_with_url_is_accepted() -> None:
    config = AppConfig(store_type="redis", redis_url="redis://localhost:6379/0")

    assert config.store_type == "redis"


def test_history_window_reads_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HISTORY_WINDOW", "5")

    assert AppConfig().history_window == 5


def test_provider_base_url_is_normalised() -> None:
    config = ProviderConfig(api_key="k", base_url="https://router.example/v1/")

    assert config.completions_url == "https://router.example/v1/chat/completions"


def test_provider_key_accepts_hugging_face_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROVIDER_API_KEY", raising=False)
    monkeypatch.setenv("HUGGING_FACE_API_KEY", "hf_secret")

    assert ProviderConfig().api_key == "hf_secret"


def test_provider_timeouts_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        ProviderConfig(api_key="k", timeout=0)
