"""Redis-backed conversation store.

Key layout:

* ``chat:<id>``       hash with ``model``, ``createdAt``, ``ownerKey``, ``title``
* ``messages:<id>``   list of JSON ``{"role", "content"}`` records
* ``<owner>:chats``   list of conversation ids, most recent last
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from ..models.chat_message import ChatMessage
from ..models.conversation import Conversation
from ..models.enums import MessageRole
from ..models.owner_key import OwnerKey
from ..utils.error_handler import ConversationNotFound, StorageUnavailable
from .message_store import MessageStore

T = TypeVar("T")


def translate_storage_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Decorator converting Redis failures into :class:`StorageUnavailable`."""

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except RedisError as exc:
            logger.error("Redis operation {} failed: {}", func.__name__, exc)
            raise StorageUnavailable(f"Message store unavailable during {func.__name__}") from exc

    return wrapper


def chat_key(conversation_id: str) -> str:
    return f"chat:{conversation_id}"


def messages_key(conversation_id: str) -> str:
    return f"messages:{conversation_id}"


def owner_chats_key(owner_key: OwnerKey | str) -> str:
    return f"{owner_key}:chats"


class RedisMessageStore(MessageStore):
    """Message store persisting to Redis via ``redis.asyncio``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisMessageStore":
        return cls(redis.from_url(url, decode_responses=True))

    @translate_storage_errors
    async def create_conversation(
        self,
        conversation_id: str,
        model_id: str,
        owner_key: OwnerKey,
        title: str,
        first_message: ChatMessage | None = None,
    ) -> Conversation:
        conversation = Conversation(
            conversation_id=conversation_id,
            model=model_id,
            owner_key=str(owner_key),
            title=title,
            created_at=datetime.now(timezone.utc),
        )
        # MULTI/EXEC so metadata, first prompt and owner index land together
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(chat_key(conversation_id), mapping=conversation.to_fields())
            if first_message is not None:
                pipe.rpush(messages_key(conversation_id), first_message.to_record())
            pipe.rpush(owner_chats_key(owner_key), conversation_id)
            await pipe.execute()
        logger.info("Started new chat: {} ({})", chat_key(conversation_id), owner_key)
        return conversation

    @translate_storage_errors
    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> None:
        record = ChatMessage(role=role, content=content).to_record()
        await self._client.rpush(messages_key(conversation_id), record)

    @translate_storage_errors
    async def read_transcript(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        if limit is not None and limit <= 0:
            return []
        start = 0 if limit is None else -limit
        records = await self._client.lrange(messages_key(conversation_id), start, -1)
        return [ChatMessage.from_record(record) for record in records]

    @translate_storage_errors
    async def read_metadata(self, conversation_id: str) -> Conversation:
        fields = await self._client.hgetall(chat_key(conversation_id))
        if not fields:
            raise ConversationNotFound(conversation_id)
        return Conversation.from_fields(conversation_id, fields)

    @translate_storage_errors
    async def set_model(self, conversation_id: str, model_id: str) -> None:
        key = chat_key(conversation_id)
        if not await self._client.exists(key):
            raise ConversationNotFound(conversation_id)
        await self._client.hset(key, "model", model_id)

    @translate_storage_errors
    async def list_conversations(self, owner_key: OwnerKey, limit: int | None = None) -> list[Conversation]:
        if limit is not None and limit <= 0:
            return []
        start = 0 if limit is None else -limit
        ids = await self._client.lrange(owner_chats_key(owner_key), start, -1)
        ids = list(reversed(ids))
        if not ids:
            return []
        async with self._client.pipeline(transaction=False) as pipe:
            for conversation_id in ids:
                pipe.hgetall(chat_key(conversation_id))
            results = await pipe.execute()
        return [
            Conversation.from_fields(conversation_id, fields)
            for conversation_id, fields in zip(ids, results)
            if fields
        ]

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: {}", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed.")
