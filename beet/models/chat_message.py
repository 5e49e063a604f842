"""Models representing transcript entries."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .enums import MessageRole


class ChatMessage(BaseModel):
    """A single transcript entry.

    Transcript entries are append-only; once persisted a message is
    never rewritten.  The serialised form is the ``{"role", "content"}``
    pair expected by chat-completion providers.
    """

    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    content: str

    def to_record(self) -> str:
        """Return the JSON record stored in the transcript list."""
        return self.model_dump_json()

    @classmethod
    def from_record(cls, record: str | bytes) -> "ChatMessage":
        return cls.model_validate_json(record)
