"""Client for the upstream chat-completion provider.

Issues one streaming ``POST /chat/completions`` per call and hands the
raw response body back as an async iterator of bytes.  The client does
not interpret the event stream; see :mod:`beet.streaming.sse_decoder`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncGenerator, AsyncIterator, Sequence

import httpx
from loguru import logger

from ..config.provider_config import ProviderConfig, get_provider_config
from ..models.chat_message import ChatMessage
from ..utils.error_handler import UpstreamEmptyBody, UpstreamRejected, UpstreamUnavailable

ERROR_EXCERPT_LENGTH = 500


async def _first_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    async for chunk in chunks:
        if chunk:
            return chunk
    return None


async def _body_stream(first: bytes, rest: AsyncIterator[bytes]) -> AsyncGenerator[bytes, None]:
    yield first
    try:
        async for chunk in rest:
            if chunk:
                yield chunk
    except httpx.HTTPError as exc:
        raise UpstreamUnavailable(f"Provider stream failed: {exc}") from exc


class ProviderClient:
    """Streaming chat-completion client built on ``httpx.AsyncClient``.

    A single :class:`httpx.AsyncClient` is shared by every call so that
    upstream connections are pooled.  Tests can pass a client wired to
    :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_provider_config()
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
        )

    def build_payload(
        self,
        upstream_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int,
    ) -> dict[str, Any]:
        """Return the JSON request body for a streaming completion."""
        return {
            "model": upstream_id,
            "messages": [message.model_dump(mode="json") for message in messages],
            "stream": True,
            "max_tokens": max_tokens,
        }

    @asynccontextmanager
    async def complete(
        self,
        upstream_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a streaming completion and yield its body as bytes.

        Leaving the context closes the upstream response, whether the
        body was fully read or not.

        Raises
        ------
        UpstreamUnavailable
            On connect failures, timeouts and other transport errors.
        UpstreamRejected
            If the provider answers with a non-2xx status.
        UpstreamEmptyBody
            If the provider answers 2xx but sends no body.
        """
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        payload = self.build_payload(upstream_id, messages, max_tokens)
        logger.debug(
            "Requesting completion model={} messages={} max_tokens={}",
            upstream_id,
            len(payload["messages"]),
            max_tokens,
        )

        request = self._http_client.build_request(
            "POST", self.config.completions_url, headers=headers, json=payload
        )
        body: AsyncGenerator[bytes, None] | None = None
        chunks: AsyncGenerator[bytes, None] | None = None
        try:
            response = await self._http_client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("Provider unreachable for model {}: {}", upstream_id, exc)
            raise UpstreamUnavailable(f"Provider unreachable: {exc}") from exc

        try:
            if not response.is_success:
                try:
                    excerpt = (await response.aread())[:ERROR_EXCERPT_LENGTH].decode("utf-8", "replace")
                except httpx.HTTPError:
                    excerpt = ""
                logger.error(
                    "Provider rejected model {} with status {}: {}",
                    upstream_id,
                    response.status_code,
                    excerpt,
                )
                raise UpstreamRejected(response.status_code, excerpt)

            chunks = response.aiter_bytes()
            try:
                first = await _first_chunk(chunks)
            except httpx.HTTPError as exc:
                raise UpstreamUnavailable(f"Provider stream failed: {exc}") from exc
            if first is None:
                logger.error("Provider returned an empty body for model {}", upstream_id)
                raise UpstreamEmptyBody("Provider returned an empty body")

            logger.debug("Provider stream opened for model {}", upstream_id)
            body = _body_stream(first, chunks)
            yield body
        finally:
            if body is not None:
                await body.aclose()
            if chunks is not None:
                await chunks.aclose()
            await response.aclose()

    async def aclose(self) -> None:
        await self._http_client.aclose()


@lru_cache()
def get_provider_client() -> ProviderClient:
    """Return the process-wide provider client."""
    return ProviderClient()
