"""Enumerations used across models."""

from enum import Enum


class MessageRole(str, Enum):
    """Enum for message roles in a conversation.

    ``USER`` denotes a human message and ``ASSISTANT`` a reply from the
    model.  ``SYSTEM`` messages are synthesized when a provider request is
    built and are never persisted.
    """

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class AccessTier(str, Enum):
    """Access tier required to use a model."""

    STANDARD = "standard"
    PREMIUM = "premium"


class OwnerKind(str, Enum):
    """Discriminator for conversation owners."""

    USER = "user"
    SESSION = "session"
