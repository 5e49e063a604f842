"""Expose commonly used model classes at the package level.

Importing these classes here allows consumers to write concise imports like::

    from beet.models import ChatMessage, Conversation, OwnerKey
"""

from .chat_message import ChatMessage  # noqa: F401
from .chat_request import AskRequest  # noqa: F401
from .chat_response import ConversationDetail, ConversationStarted, TurnAccepted  # noqa: F401
from .conversation import Conversation, title_from_prompt  # noqa: F401
from .enums import AccessTier, MessageRole, OwnerKind  # noqa: F401
from .model_descriptor import ModelDescriptor, ModelGroup, ModelOption  # noqa: F401
from .owner_key import OwnerKey  # noqa: F401
