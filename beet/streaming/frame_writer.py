"""Formatting and lifecycle of the browser-facing event stream."""

from __future__ import annotations

from typing import Awaitable, Callable

from loguru import logger

NEWLINE_PLACEHOLDER = "<br>"

EVENT_STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # stop reverse proxies from buffering the stream
    "X-Accel-Buffering": "no",
}

DisconnectCheck = Callable[[], Awaitable[bool]]


def encode_newlines(text: str) -> str:
    """Replace newlines with the placeholder the client turns back into breaks."""
    return text.replace("\n", NEWLINE_PLACEHOLDER)


class EventStreamWriter:
    """Produce SSE frames for one client response.

    The writer hands back frame strings for the ASGI response to send
    and tracks whether the stream may still be written to.  Once
    :meth:`end` has been called every write is a no-op returning
    ``None``, so the completion and error paths can both close safely.

    Parameters
    ----------
    is_disconnected:
        Optional coroutine function reporting whether the client has
        gone away, typically :meth:`starlette.requests.Request.is_disconnected`.
    """

    def __init__(self, is_disconnected: DisconnectCheck | None = None) -> None:
        self._is_disconnected = is_disconnected
        self._opened = False
        self._ended = False
        self.disconnected = False
        self.frames_written = 0

    @property
    def ended(self) -> bool:
        return self._ended

    def open(self) -> dict[str, str]:
        """Return the streaming response headers.  May only be called once."""
        if self._opened:
            raise RuntimeError("Event stream already opened")
        self._opened = True
        return dict(EVENT_STREAM_HEADERS)

    def _frame(self, frame: str) -> str | None:
        if not self._opened:
            raise RuntimeError("Event stream written before open()")
        if self._ended:
            return None
        self.frames_written += 1
        return frame

    def token(self, text: str) -> str | None:
        """Frame one token; newlines must already be encoded."""
        return self._frame(f"data: {text}\n\n")

    def close_event(self) -> str | None:
        return self._frame("event: close\ndata: done\n\n")

    def end(self) -> None:
        if not self._ended:
            self._ended = True
            logger.debug("Event stream ended after {} frames", self.frames_written)

    async def writable(self) -> bool:
        """Return False once the stream has ended or the client has left."""
        if self._ended:
            return False
        if self._is_disconnected is not None and await self._is_disconnected():
            self.disconnected = True
            self.end()
            return False
        return True
