"""Response models for the chat API."""

from pydantic import BaseModel, Field

from .chat_message import ChatMessage
from .conversation import Conversation


class ConversationStarted(BaseModel):
    """Returned when the first prompt of a new chat is accepted."""

    conversation_id: str
    model: str
    title: str
    stream_url: str = Field(..., description="Event stream carrying the assistant reply.")


class TurnAccepted(BaseModel):
    """Returned when a follow-up prompt is appended to a chat."""

    conversation_id: str
    model: str
    stream_url: str


class ConversationDetail(BaseModel):
    """A conversation's metadata together with its transcript."""

    conversation: Conversation
    messages: list[ChatMessage]
