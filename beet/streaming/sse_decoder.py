"""Incremental decoder for the provider's server-sent event stream.

The provider sends newline-delimited ``data: <json>`` lines and ends the
stream with ``data: [DONE]``.  Network chunks bear no relation to line
boundaries, so the decoder carries the unterminated tail of each chunk
over to the next one.  Bytes are decoded incrementally, which keeps
multibyte characters intact when a chunk boundary falls inside one.

A decoder instance holds the state of exactly one stream.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, Union

from loguru import logger

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class Token:
    """An incremental text fragment produced by the model."""

    text: str


@dataclass(frozen=True)
class Terminal:
    """The provider signalled the normal end of the stream."""


ProviderEvent = Union[Token, Terminal]


@dataclass
class DecoderStats:
    """Counters describing what a decoder has seen."""

    tokens: int = 0
    empty_events: int = 0
    noise: int = 0

    @property
    def only_noise(self) -> bool:
        return self.tokens == 0 and self.noise > 0


def extract_text(payload: Any) -> str | None:
    """Return ``choices[0].delta.content`` when it is a non-empty string."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class ProviderEventDecoder:
    """Turn arbitrarily chunked bytes into :class:`Token`/:class:`Terminal` events."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.terminated = False
        self.stats = DecoderStats()

    def feed(self, chunk: bytes) -> list[ProviderEvent]:
        """Consume one chunk and return the events it completes."""
        if self.terminated:
            return []
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._process(lines)

    def finish(self) -> list[ProviderEvent]:
        """Flush any buffered line once the byte stream has ended."""
        if self.terminated:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._process([tail]) if tail else []

    def _process(self, lines: list[str]) -> list[ProviderEvent]:
        events: list[ProviderEvent] = []
        for line in lines:
            event = self._parse_line(line.rstrip("\r"))
            if event is None:
                continue
            events.append(event)
            if isinstance(event, Terminal):
                self.terminated = True
                self._buffer = ""
                break
        return events

    def _parse_line(self, line: str) -> ProviderEvent | None:
        if not line.startswith(DATA_PREFIX):
            return None
        data = line[len(DATA_PREFIX):]
        if data.startswith(" "):
            data = data[1:]
        data = data.strip()
        if data == DONE_SENTINEL:
            return Terminal()
        if not data:
            return None

        try:
            payload = json.loads(data)
        except ValueError:
            self.stats.noise += 1
            logger.debug("Discarding malformed provider event: {!r}", data[:80])
            return None

        text = extract_text(payload)
        if text is None:
            self.stats.empty_events += 1
            return None
        self.stats.tokens += 1
        return Token(text)
