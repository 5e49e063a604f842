"""Model representing conversation metadata."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

TITLE_LENGTH = 15


def title_from_prompt(prompt: str) -> str:
    """Derive a conversation title from the first prompt."""
    return prompt.strip()[:TITLE_LENGTH]


class Conversation(BaseModel):
    """Metadata record for one conversation.

    ``model`` is the only field that changes after creation: the user may
    switch models between turns.  The transcript itself is stored
    separately as an append-only list.
    """

    conversation_id: str = Field(..., description="Opaque unique identifier.")
    model: str = Field(..., description="Currently selected model id.")
    owner_key: str = Field(..., description="Owner key, either user:<id> or session:<id>.")
    title: str = Field(default="", description="First characters of the initial prompt.")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp when the conversation was created (UTC).",
    )

    def to_fields(self) -> dict[str, str]:
        """Flatten into the persisted field map."""
        return {
            "model": self.model,
            "createdAt": self.created_at.isoformat(),
            "ownerKey": self.owner_key,
            "title": self.title,
        }

    @classmethod
    def from_fields(cls, conversation_id: str, fields: dict[str, str]) -> "Conversation":
        return cls(
            conversation_id=conversation_id,
            model=fields.get("model", ""),
            owner_key=fields.get("ownerKey", ""),
            title=fields.get("title", ""),
            created_at=fields.get("createdAt") or datetime.now(timezone.utc),
        )
