"""Streaming relay between the provider and the browser.

One call to :meth:`RelayService.open_stream` handles one assistant turn:

1. load the conversation's recent transcript and resolve the model the
   caller is allowed to use,
2. open a streaming completion with the provider,
3. decode provider events and re-frame every token for the browser
   while accumulating the full reply,
4. on the provider's terminal event close the browser stream and
   append the reply to the transcript.

A reply is only ever committed whole.  Truncated streams, provider
errors and client disconnects end the browser stream without a
``close`` event and leave the transcript untouched.

All per-turn state lives on a :class:`RelayRun` owned by the generator
serving that turn.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import AsyncIterator

from loguru import logger

from ..config.app_config import AppConfig, get_app_config
from ..models.chat_message import ChatMessage
from ..models.enums import MessageRole
from ..models.model_descriptor import ModelDescriptor
from ..models.owner_key import OwnerKey
from ..prompts import DEFAULT_SYSTEM_PROMPT
from ..storage import MessageStore, get_message_store
from ..streaming.frame_writer import EventStreamWriter, encode_newlines
from ..streaming.sse_decoder import ProviderEvent, ProviderEventDecoder, Terminal
from ..utils.error_handler import ChatError, ConversationNotFound, UpstreamError
from .model_catalog import ModelCatalog, get_model_catalog
from .provider_client import ProviderClient, get_provider_client


class RelayState(str, Enum):
    """Lifecycle of one relay invocation."""

    IDLE = "idle"
    HISTORY_LOADED = "history_loaded"
    REQUEST_SENT = "request_sent"
    STREAMING = "streaming"
    COMMITTING = "committing"
    CLOSED = "closed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({RelayState.CLOSED, RelayState.ABORTED})

ALLOWED_TRANSITIONS: dict[RelayState, frozenset[RelayState]] = {
    RelayState.IDLE: frozenset({RelayState.HISTORY_LOADED, RelayState.ABORTED}),
    RelayState.HISTORY_LOADED: frozenset({RelayState.REQUEST_SENT, RelayState.ABORTED}),
    RelayState.REQUEST_SENT: frozenset({RelayState.STREAMING, RelayState.ABORTED}),
    RelayState.STREAMING: frozenset({RelayState.COMMITTING, RelayState.ABORTED}),
    RelayState.COMMITTING: frozenset({RelayState.CLOSED}),
    RelayState.CLOSED: frozenset(),
    RelayState.ABORTED: frozenset(),
}


@dataclass
class RelayRun:
    """State owned by a single relay invocation."""

    conversation_id: str
    state: RelayState = RelayState.IDLE
    model: ModelDescriptor | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    chunks: list[str] = field(default_factory=list)
    decoder: ProviderEventDecoder = field(default_factory=ProviderEventDecoder)
    abort_reason: str | None = None
    committed: bool = False
    commit_task: asyncio.Task | None = None

    @property
    def accumulated(self) -> str:
        return "".join(self.chunks)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: RelayState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal relay transition {self.state.value} -> {new_state.value}")
        logger.debug("Relay {}: {} -> {}", self.conversation_id, self.state.value, new_state.value)
        self.state = new_state

    def abort(self, reason: str) -> None:
        # a scheduled commit already owns the outcome
        if self.finished or self.state is RelayState.COMMITTING:
            return
        self.abort_reason = reason
        self.transition(RelayState.ABORTED)


async def _provider_events(body: AsyncIterator[bytes], decoder: ProviderEventDecoder) -> AsyncIterator[ProviderEvent]:
    async for chunk in body:
        for event in decoder.feed(chunk):
            yield event
        if decoder.terminated:
            return
    for event in decoder.finish():
        yield event


class RelayService:
    """Relay provider completions to the browser and persist the result.

    Parameters
    ----------
    store:
        Conversation storage.
    catalog:
        Model catalog applying premium gating.
    provider:
        Streaming chat-completion client.
    app_config:
        Supplies ``history_window``, the number of most recent transcript
        entries replayed to the provider.
    """

    def __init__(
        self,
        store: MessageStore,
        catalog: ModelCatalog | None = None,
        provider: ProviderClient | None = None,
        app_config: AppConfig | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.store = store
        self.catalog = catalog or get_model_catalog()
        self.provider = provider or get_provider_client()
        self.app_config = app_config or get_app_config()
        self.system_prompt = system_prompt
        self._pending_commits: set[asyncio.Task] = set()

    async def prepare(
        self,
        conversation_id: str,
        model_id: str | None,
        owner_key: OwnerKey,
        is_premium_user: bool,
    ) -> RelayRun:
        """Load history and resolve the model for one turn.

        Raises
        ------
        ConversationNotFound
            If the conversation does not exist or belongs to another owner.
        StorageUnavailable
            If the store cannot be read.
        """
        run = RelayRun(conversation_id=conversation_id)
        conversation = await self.store.read_metadata(conversation_id)
        if conversation.owner_key != str(owner_key):
            logger.warning(
                "Relay for {} refused: owned by {}, requested by {}",
                conversation_id,
                conversation.owner_key,
                owner_key,
            )
            raise ConversationNotFound(conversation_id)

        history = await self.store.read_transcript(
            conversation_id, limit=self.app_config.history_window
        )
        run.model = self.catalog.effective_model(model_id, is_premium_user)
        run.messages = [ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt), *history]
        run.transition(RelayState.HISTORY_LOADED)
        logger.info(
            "Relay {} prepared: model={} history={}",
            conversation_id,
            run.model.id,
            len(history),
        )
        return run

    async def open_stream(
        self,
        conversation_id: str,
        model_id: str | None,
        owner_key: OwnerKey,
        is_premium_user: bool,
        writer: EventStreamWriter,
    ) -> tuple[RelayRun, AsyncIterator[str]]:
        """Prepare a turn and return its run together with its frame stream.

        Failures while loading history are raised here, before the
        caller has sent any response headers.
        """
        run = await self.prepare(conversation_id, model_id, owner_key, is_premium_user)
        return run, self.stream(run, writer)

    async def stream(self, run: RelayRun, writer: EventStreamWriter) -> AsyncIterator[str]:
        """Yield client frames for a prepared run."""
        if run.state is not RelayState.HISTORY_LOADED or run.model is None:
            raise RuntimeError("Relay run must be prepared before streaming")
        model = run.model
        terminal = False
        try:
            async with self.provider.complete(
                model.upstream_id, run.messages, model.max_output_tokens
            ) as body:
                run.transition(RelayState.REQUEST_SENT)
                async with aclosing(_provider_events(body, run.decoder)) as events:
                    run.transition(RelayState.STREAMING)
                    async for event in events:
                        if isinstance(event, Terminal):
                            terminal = True
                            break
                        if not await writer.writable():
                            run.abort("client disconnected")
                            logger.info("Client left relay {}; abandoning provider stream", run.conversation_id)
                            return
                        run.chunks.append(event.text)
                        frame = writer.token(encode_newlines(event.text))
                        if frame is not None:
                            yield frame

            if not terminal:
                run.abort("provider stream ended without terminal event")
                logger.warning(
                    "Relay {} truncated after {} tokens; nothing committed",
                    run.conversation_id,
                    run.decoder.stats.tokens,
                )
                return

            run.transition(RelayState.COMMITTING)
            frame = writer.close_event()
            writer.end()
            # the commit must not depend on the client connection surviving
            run.commit_task = asyncio.ensure_future(self.commit(run))
            self._pending_commits.add(run.commit_task)
            run.commit_task.add_done_callback(self._pending_commits.discard)
            if frame is not None:
                yield frame
        except UpstreamError as exc:
            run.abort(str(exc))
            logger.error("Relay {} aborted: {}", run.conversation_id, exc)
        except (asyncio.CancelledError, GeneratorExit):
            run.abort("client disconnected")
            logger.info("Relay {} cancelled by client disconnect", run.conversation_id)
            raise
        except Exception:
            run.abort("unexpected error")
            logger.exception("Relay {} failed mid-stream", run.conversation_id)
        finally:
            writer.end()
            self._log_outcome(run)

    async def commit(self, run: RelayRun) -> None:
        """Append the accumulated reply to the transcript.

        Storage failures are logged and swallowed: the reply has already
        been delivered to the client.
        """
        if run.state is not RelayState.COMMITTING:
            raise RuntimeError(f"Cannot commit relay in state {run.state.value}")
        text = run.accumulated
        try:
            if text:
                await self.store.append_message(run.conversation_id, MessageRole.ASSISTANT, text)
                run.committed = True
                logger.info("Saved assistant response to conversation {}", run.conversation_id)
            else:
                logger.warning("Relay {} finished without any text; nothing saved", run.conversation_id)
        except ChatError as exc:
            logger.error("Failed to save assistant response for {}: {}", run.conversation_id, exc)
        finally:
            run.transition(RelayState.CLOSED)

    async def wait_for_commits(self) -> None:
        """Wait for commits still in flight, e.g. during shutdown."""
        if self._pending_commits:
            await asyncio.gather(*self._pending_commits, return_exceptions=True)

    @staticmethod
    def _log_outcome(run: RelayRun) -> None:
        stats = run.decoder.stats
        if stats.only_noise:
            logger.warning(
                "Relay {} received {} malformed provider events and no tokens",
                run.conversation_id,
                stats.noise,
            )
        logger.info(
            "Relay {} finished state={} tokens={} empty_events={} noise={} reason={}",
            run.conversation_id,
            run.state.value,
            stats.tokens,
            stats.empty_events,
            stats.noise,
            run.abort_reason,
        )


@lru_cache()
def get_relay_service() -> RelayService:
    """Return the process-wide relay service."""
    return RelayService(store=get_message_store())
