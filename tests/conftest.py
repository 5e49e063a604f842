from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable, Iterable

import httpx
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from beet.config.app_config import AppConfig
from beet.config.provider_config import ProviderConfig
from beet.services.model_catalog import ModelCatalog
from beet.services.provider_client import ProviderClient
from beet.services.relay_service import RelayService
from beet.storage.message_store import InMemoryMessageStore


def token_event(text: str) -> str:
    payload = {"choices": [{"index": 0, "delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def sse_body(*tokens: str, done: bool = True) -> bytes:
    """Build a provider event stream emitting ``tokens``."""
    body = "".join(token_event(token) for token in tokens)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


class RecordingStream(httpx.AsyncByteStream):
    """Response body that remembers how far it was read and whether it was closed."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self.chunks = list(chunks)
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class BrokenStream(RecordingStream):
    """Response body whose connection drops after its chunks are sent."""

    def __init__(self, chunks: Iterable[bytes], error: Exception) -> None:
        super().__init__(chunks)
        self.error = error

    async def __aiter__(self):
        async for chunk in super().__aiter__():
            yield chunk
        raise self.error


class FakeProvider:
    """Serves canned responses through ``httpx.MockTransport``."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        status_code: int = 200,
        stream_error: Exception | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.status_code = status_code
        self.stream_error = stream_error
        self.requests: list[httpx.Request] = []
        self.streams: list[RecordingStream] = []
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.stream_error is not None:
            stream = BrokenStream(self.chunks, self.stream_error)
        else:
            stream = RecordingStream(self.chunks)
        self.streams.append(stream)
        return httpx.Response(
            self.status_code,
            headers={"content-type": "text/event-stream"},
            stream=stream,
        )

    def client(self) -> ProviderClient:
        config = ProviderConfig(api_key="test-key", base_url="https://provider.test/v1/")
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return ProviderClient(config=config, http_client=http_client)

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(history_window=11)


@pytest.fixture
def make_relay(store, catalog, app_config) -> Callable[[FakeProvider], RelayService]:
    def factory(provider: FakeProvider) -> RelayService:
        return RelayService(
            store=store,
            catalog=catalog,
            provider=provider.client(),
            app_config=app_config,
            system_prompt="You are a test assistant.",
        )

    return factory
