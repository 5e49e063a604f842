"""Conversation bookkeeping around the relay.

The ChatService records user prompts before a reply is streamed:
starting a conversation writes its metadata, indexes it under the
owner and stores the first prompt; a follow-up turn appends the prompt
and records a model switch.  It also serves the read side used to list
and reopen conversations.
"""

from __future__ import annotations

import uuid
from functools import lru_cache

from loguru import logger

from ..models.chat_message import ChatMessage
from ..models.chat_response import ConversationDetail, ConversationStarted, TurnAccepted
from ..models.conversation import title_from_prompt
from ..models.enums import MessageRole
from ..models.owner_key import OwnerKey
from ..storage import MessageStore, get_message_store
from ..utils.error_handler import ConversationNotFound
from .model_catalog import ModelCatalog, get_model_catalog


def stream_url(conversation_id: str, model_id: str) -> str:
    return f"/stream/{conversation_id}/{model_id}"


class ChatService:
    """Coordinates conversation records in the message store.

    Model ids are gated through the catalog here as well as in the
    relay, so the stored ``model`` never names a model the owner may
    not use.
    """

    def __init__(self, store: MessageStore, catalog: ModelCatalog | None = None) -> None:
        self.store = store
        self.catalog = catalog or get_model_catalog()

    async def start_conversation(
        self,
        owner_key: OwnerKey,
        message: str,
        model_id: str | None,
        is_premium_user: bool,
    ) -> ConversationStarted:
        """Create a conversation and store its first prompt.

        Raises
        ------
        StorageUnavailable
            If the conversation could not be created.
        """
        conversation_id = str(uuid.uuid4())
        model = self.catalog.effective_model(model_id, is_premium_user)
        title = title_from_prompt(message)
        await self.store.create_conversation(
            conversation_id,
            model.id,
            owner_key,
            title,
            first_message=ChatMessage(role=MessageRole.USER, content=message),
        )
        logger.info("Started chat {} for {} with model {}", conversation_id, owner_key, model.id)
        return ConversationStarted(
            conversation_id=conversation_id,
            model=model.id,
            title=title,
            stream_url=stream_url(conversation_id, model.id),
        )

    async def add_turn(
        self,
        conversation_id: str,
        owner_key: OwnerKey,
        message: str,
        model_id: str | None,
        is_premium_user: bool,
    ) -> TurnAccepted:
        """Append a follow-up prompt, switching the model if it changed."""
        conversation = await self._owned(conversation_id, owner_key)
        model = self.catalog.effective_model(model_id or conversation.model, is_premium_user)
        await self.store.append_message(conversation_id, MessageRole.USER, message)
        logger.info("Saved new prompt to conversation {}", conversation_id)
        if conversation.model != model.id:
            await self.store.set_model(conversation_id, model.id)
            logger.info("Conversation {} switched model {} -> {}", conversation_id, conversation.model, model.id)
        return TurnAccepted(
            conversation_id=conversation_id,
            model=model.id,
            stream_url=stream_url(conversation_id, model.id),
        )

    async def list_conversations(self, owner_key: OwnerKey, limit: int | None = None):
        return await self.store.list_conversations(owner_key, limit=limit)

    async def get_conversation(self, conversation_id: str, owner_key: OwnerKey) -> ConversationDetail:
        conversation = await self._owned(conversation_id, owner_key)
        messages = await self.store.read_transcript(conversation_id)
        return ConversationDetail(conversation=conversation, messages=messages)

    async def health_check(self) -> dict[str, str]:
        """Return a simple health status for the store."""
        if await self.store.ping():
            return {"status": "ok", "store": "ok"}
        return {"status": "degraded", "store": "unreachable"}

    async def _owned(self, conversation_id: str, owner_key: OwnerKey):
        conversation = await self.store.read_metadata(conversation_id)
        if conversation.owner_key != str(owner_key):
            raise ConversationNotFound(conversation_id)
        return conversation


@lru_cache()
def get_chat_service() -> ChatService:
    """Dependency injector for ChatService instances.

    FastAPI will call this function to obtain a singleton
    ChatService.  The lru_cache decorator ensures only one
    instance exists.
    """
    return ChatService(store=get_message_store())
