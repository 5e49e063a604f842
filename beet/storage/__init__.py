"""Conversation storage backends."""

from __future__ import annotations

from functools import lru_cache

from loguru import logger

from ..config.app_config import AppConfig, get_app_config
from .message_store import InMemoryMessageStore, MessageStore  # noqa: F401


def build_message_store(app_config: AppConfig | None = None) -> MessageStore:
    """Instantiate the backend selected by ``STORE_TYPE``."""
    app_config = app_config or get_app_config()
    if app_config.store_type == "redis":
        from .redis_store import RedisMessageStore

        logger.info("Using Redis message store")
        return RedisMessageStore.from_url(app_config.redis_url)  # type: ignore[arg-type]
    logger.info("Using in-memory message store")
    return InMemoryMessageStore()


@lru_cache()
def get_message_store() -> MessageStore:
    """Return the process-wide message store."""
    return build_message_store()
