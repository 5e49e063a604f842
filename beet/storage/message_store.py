"""Append-only conversation storage.

A conversation is persisted as two records: a flat metadata map and an
ordered transcript list.  Each owner additionally has an ordered list
of conversation ids (most recent last) which is the only index kept.
Backends implement :class:`MessageStore`; :class:`InMemoryMessageStore`
keeps everything in process and is used for development and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List

from loguru import logger

from ..models.chat_message import ChatMessage
from ..models.conversation import Conversation
from ..models.enums import MessageRole
from ..models.owner_key import OwnerKey
from ..utils.error_handler import ConversationNotFound


class MessageStore(ABC):
    """Abstract interface over the conversation log."""

    @abstractmethod
    async def create_conversation(
        self,
        conversation_id: str,
        model_id: str,
        owner_key: OwnerKey,
        title: str,
        first_message: ChatMessage | None = None,
    ) -> Conversation:
        """Write conversation metadata and index it under its owner.

        ``first_message``, when given, starts the transcript in the same
        write, so a conversation never exists without its opening prompt.

        Raises
        ------
        StorageUnavailable
            If the backend cannot be reached.  No partial record is left.
        """
        ...

    @abstractmethod
    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> None:
        """Append one entry to the conversation's transcript."""
        ...

    @abstractmethod
    async def read_transcript(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Return the transcript in order, or only its last ``limit`` entries."""
        ...

    @abstractmethod
    async def read_metadata(self, conversation_id: str) -> Conversation:
        """Return the metadata record or raise :class:`ConversationNotFound`."""
        ...

    @abstractmethod
    async def set_model(self, conversation_id: str, model_id: str) -> None:
        """Change the conversation's active model (last writer wins)."""
        ...

    @abstractmethod
    async def list_conversations(self, owner_key: OwnerKey, limit: int | None = None) -> list[Conversation]:
        """Return the owner's conversations, most recent first."""
        ...

    async def ping(self) -> bool:
        """Return True when the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


def _tail(items: list, limit: int | None) -> list:
    if limit is None:
        return list(items)
    if limit <= 0:
        return []
    return items[-limit:]


class InMemoryMessageStore(MessageStore):
    """Process-local store backed by dictionaries.

    Every mutation completes without yielding to the event loop, so
    concurrent coroutines never observe a half-written record.
    """

    def __init__(self) -> None:
        # conversation_id -> metadata
        self._conversations: Dict[str, Conversation] = {}
        # conversation_id -> serialised transcript records
        self._transcripts: Dict[str, List[str]] = {}
        # owner key -> conversation ids, most recent last
        self._owner_index: Dict[str, List[str]] = {}

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
        if first_message is not None:
            self._transcripts.setdefault(conversation_id, []).append(first_message.to_record())
        self._conversations[conversation_id] = conversation
        self._owner_index.setdefault(str(owner_key), []).append(conversation_id)
        logger.debug("Created conversation {} for {}", conversation_id, owner_key)
        return conversation

    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> None:
        record = ChatMessage(role=role, content=content).to_record()
        self._transcripts.setdefault(conversation_id, []).append(record)

    async def read_transcript(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        records = self._transcripts.get(conversation_id, [])
        return [ChatMessage.from_record(record) for record in _tail(records, limit)]

    async def read_metadata(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation.model_copy()

    async def set_model(self, conversation_id: str, model_id: str) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        self._conversations[conversation_id] = conversation.model_copy(update={"model": model_id})

    async def list_conversations(self, owner_key: OwnerKey, limit: int | None = None) -> list[Conversation]:
        ids = _tail(self._owner_index.get(str(owner_key), []), limit)
        return [
            self._conversations[conversation_id].model_copy()
            for conversation_id in reversed(ids)
            if conversation_id in self._conversations
        ]
