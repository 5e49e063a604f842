"""Error handling utilities and custom exceptions.

Every failure the relay core can report derives from :class:`ChatError`.
Each subclass carries the HTTP status the API layer should answer with
when the error escapes before a streaming response has been opened.
"""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class ChatError(Exception):
    """Exception raised when a chat operation fails."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class StorageUnavailable(ChatError):
    """The backing message store could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ConversationNotFound(ChatError):
    """No metadata record exists for the requested conversation."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


class UnknownModel(ChatError):
    """The requested model id is not in the catalog."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Unknown model {model_id!r}")


class UpstreamError(ChatError):
    """The inference provider call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class UpstreamUnavailable(UpstreamError):
    """Network or connect failure talking to the provider."""


class UpstreamRejected(UpstreamError):
    """The provider answered with a non-2xx status."""

    def __init__(self, upstream_status: int, detail: str = "") -> None:
        self.upstream_status = upstream_status
        self.detail = detail
        super().__init__(f"Provider rejected request with status {upstream_status}")


class UpstreamEmptyBody(UpstreamError):
    """The provider answered successfully but sent no body."""


async def http_exception_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Convert a ChatError into a JSON error response."""
    if exc.status_code >= 500:
        logger.error("ChatError occurred on {}: {}", request.url.path, exc)
    else:
        logger.info("Request to {} rejected: {}", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )
