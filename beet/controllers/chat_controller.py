"""API controller for chat operations.

Routes here resolve the caller, hand the request to the service layer
and render the result.  ``ChatError`` subclasses propagate to the
application's exception handler, which maps them to status codes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from loguru import logger

from ..config.app_config import AppConfig, get_app_config
from ..models.chat_request import AskRequest
from ..models.chat_response import ConversationDetail, ConversationStarted, TurnAccepted
from ..models.conversation import Conversation
from ..models.model_descriptor import ModelGroup
from ..models.owner_key import OwnerKey
from ..services.chat_service import ChatService, get_chat_service
from ..services.model_catalog import ModelCatalog, get_model_catalog
from ..services.relay_service import RelayService, get_relay_service
from ..streaming.frame_writer import EventStreamWriter
from ..utils.error_handler import ChatError

router = APIRouter(prefix="", tags=["Chat"])


@dataclass(frozen=True)
class Caller:
    """The identity a request acts under."""

    owner_key: OwnerKey
    is_premium: bool = False


def get_caller(
    request: Request,
    response: Response,
    x_user_id: str | None = Header(default=None),
    app_config: AppConfig = Depends(get_app_config),
) -> Caller:
    """Resolve the owner key for a request.

    Authenticated users are identified by the ``X-User-Id`` header set by
    the authenticating proxy in front of this service.  Anyone else gets
    an anonymous session id kept in a cookie.
    """
    if x_user_id and x_user_id.strip():
        owner_key = OwnerKey.for_user(x_user_id)
        return Caller(owner_key=owner_key, is_premium=owner_key.id in app_config.premium_users)

    session_id = (request.cookies.get(app_config.session_cookie_name) or "").strip()
    if not session_id:
        session_id = uuid.uuid4().hex
        response.set_cookie(
            app_config.session_cookie_name,
            session_id,
            httponly=True,
            secure=app_config.session_cookie_secure,
            samesite="lax",
        )
        logger.debug("Issued anonymous session {}", session_id)
    return Caller(owner_key=OwnerKey.for_session(session_id))


@router.post("/chats", response_model=ConversationStarted, status_code=status.HTTP_201_CREATED)
async def start_chat_endpoint(
    request: AskRequest,
    caller: Caller = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
) -> ConversationStarted:
    """Start a new conversation with the first prompt.

    The reply is not generated here; the client opens the returned
    ``stream_url`` to receive it.
    """
    try:
        return await service.start_conversation(
            caller.owner_key, request.message, request.model, caller.is_premium
        )
    except ChatError:
        raise
    except Exception as exc:
        logger.exception("Unhandled exception while starting chat")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc


@router.post("/chats/{conversation_id}/messages", response_model=TurnAccepted)
async def add_turn_endpoint(
    conversation_id: str,
    request: AskRequest,
    caller: Caller = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
) -> TurnAccepted:
    """Append a follow-up prompt to an existing conversation."""
    try:
        return await service.add_turn(
            conversation_id, caller.owner_key, request.message, request.model, caller.is_premium
        )
    except ChatError:
        raise
    except Exception as exc:
        logger.exception("Unhandled exception while adding turn to {}", conversation_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc


@router.get("/stream/{conversation_id}/{model_id}")
async def stream_endpoint(
    conversation_id: str,
    model_id: str,
    request: Request,
    caller: Caller = Depends(get_caller),
    relay: RelayService = Depends(get_relay_service),
) -> StreamingResponse:
    """Stream the assistant reply for the latest prompt as server-sent events."""
    writer = EventStreamWriter(is_disconnected=request.is_disconnected)
    _, frames = await relay.open_stream(
        conversation_id, model_id, caller.owner_key, caller.is_premium, writer
    )
    return StreamingResponse(frames, headers=writer.open())


@router.get("/chats", response_model=list[Conversation])
async def list_chats_endpoint(
    limit: int | None = Query(default=None, ge=1, le=500),
    caller: Caller = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
) -> list[Conversation]:
    """List the caller's conversations, most recent first."""
    logger.debug("Listing conversations for {}", caller.owner_key)
    return await service.list_conversations(caller.owner_key, limit=limit)


@router.get("/chats/{conversation_id}", response_model=ConversationDetail)
async def get_chat_endpoint(
    conversation_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
) -> ConversationDetail:
    """Return a conversation with its full transcript."""
    return await service.get_conversation(conversation_id, caller.owner_key)


@router.get("/models", response_model=list[ModelGroup])
async def list_models_endpoint(
    selected: str | None = None,
    caller: Caller = Depends(get_caller),
    catalog: ModelCatalog = Depends(get_model_catalog),
) -> list[ModelGroup]:
    """Return the model catalog grouped for a model picker."""
    return catalog.model_groups(selected, caller.is_premium)
