"""Owner keys index conversations by user or anonymous session."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from .enums import OwnerKind


class OwnerKey(BaseModel):
    """Identity under which conversations are indexed.

    Rendered as ``user:<id>`` for authenticated users and
    ``session:<id>`` for anonymous sessions.
    """

    model_config = ConfigDict(frozen=True)

    kind: OwnerKind
    id: str

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Owner id must not be empty")
        return value

    @classmethod
    def for_user(cls, user_id: str) -> "OwnerKey":
        return cls(kind=OwnerKind.USER, id=user_id.lower())

    @classmethod
    def for_session(cls, session_id: str) -> "OwnerKey":
        return cls(kind=OwnerKind.SESSION, id=session_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"
