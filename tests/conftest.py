import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from chat_relay.dependencies import get_kv_store, get_memory_factory, get_upstream_client
from chat_relay.kv_store import InMemoryKVStore, KeyValueStore
from chat_relay.llm import UpstreamClient
from chat_relay.main import app

UPSTREAM_URL = "https://inference.test/v1/chat/completions"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


class ChunkStream(httpx.AsyncByteStream):
    """Async body yielding fixed chunks, optionally failing part way."""

    def __init__(
        self,
        chunks: List[bytes],
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ):
        self.chunks = chunks
        self.fail_after = fail_after
        self.error = error or httpx.ReadError("connection reset by peer")

    async def __aiter__(self):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise self.error
            yield chunk


class FakeUpstream:
    """Records requests sent to the inference provider and answers with a canned handler."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": "hello"}}]}
        )

    def respond_json(self, body: Any, status_code: int = 200) -> None:
        self.handler = lambda request: httpx.Response(status_code, json=body)

    def respond_text(self, text: str, status_code: int) -> None:
        self.handler = lambda request: httpx.Response(status_code, text=text)

    def respond_stream(
        self, chunks: List[bytes], fail_after: Optional[int] = None, error: Optional[Exception] = None
    ) -> None:
        self.handler = lambda request: httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            stream=ChunkStream(chunks, fail_after=fail_after, error=error),
        )

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def last_payload(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def client(self) -> UpstreamClient:
        return UpstreamClient(url=UPSTREAM_URL, transport=httpx.MockTransport(self._handle))


class FakeMemory:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.api_keys: List[str] = []
        self.calls: List[Dict[str, Any]] = []

    async def add(self, messages, user_id):
        self.calls.append({"messages": messages, "user_id": user_id})
        if self.fail:
            raise RuntimeError("memory service unavailable")
        return {"results": []}


class FailingKVStore(KeyValueStore):
    def __init__(self):
        self.attempts = 0

    async def put(self, key, value):
        self.attempts += 1
        raise RuntimeError("kv write failed")

    async def get(self, key):
        return None


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("FIREWORKS_API_KEY", "fw-test-key")
    monkeypatch.setenv("MEM_API_KEY", "mem-test-key")


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def kv_store():
    return InMemoryKVStore()


@pytest.fixture
def memory():
    return FakeMemory()


@pytest.fixture
def client(upstream, kv_store, memory):
    def memory_factory(api_key):
        memory.api_keys.append(api_key)
        return memory

    app.dependency_overrides[get_upstream_client] = upstream.client
    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_memory_factory] = lambda: memory_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
