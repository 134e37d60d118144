import json
import logging

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from chat_relay import kv_store
from chat_relay.db_store import DatabaseKVStore
from chat_relay.kv_store import InMemoryKVStore, RestKVStore, get_store

RECORD = {"threadId": "t", "timestamp": "2024-01-01T00:00:00.000Z", "type": "BRIEF REFLECTION", "content": "c"}


@pytest.mark.anyio
async def test_in_memory_put_get_and_prefix():
    store = InMemoryKVStore()
    await store.put("reflection:a:1", RECORD)
    await store.put("other:b", {"x": 1})

    assert await store.get("reflection:a:1") == RECORD
    assert await store.get("missing") is None
    assert store.keys("reflection:") == ["reflection:a:1"]


@pytest.mark.anyio
async def test_in_memory_returns_copies():
    store = InMemoryKVStore()
    await store.put("k", {"x": 1})
    value = await store.get("k")
    value["x"] = 2
    assert await store.get("k") == {"x": 1}


@pytest.mark.anyio
async def test_database_store_round_trip(tmp_path):
    store = DatabaseKVStore(f"sqlite:///{tmp_path / 'kv.db'}")

    await store.put("reflection:t:1", RECORD)
    await store.put("reflection:t:1", {**RECORD, "content": "updated"})
    await store.put("reflection_other", RECORD)

    assert (await store.get("reflection:t:1"))["content"] == "updated"
    assert await store.get("nope") is None
    assert store.keys("reflection:") == ["reflection:t:1"]


@pytest.mark.anyio
async def test_database_store_connects_on_first_use(tmp_path):
    store = DatabaseKVStore(f"sqlite:///{tmp_path / 'missing' / 'kv.db'}")
    assert store.engine is None

    with pytest.raises(OperationalError):
        await store.put("reflection:t:1", RECORD)
    with pytest.raises(OperationalError):
        await store.get("reflection:t:1")


@pytest.mark.anyio
async def test_rest_store_sends_json_value_with_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"result": "OK"})
        return httpx.Response(200, json={"result": json.dumps(RECORD)})

    store = RestKVStore("https://kv.test/", "kv-token", transport=httpx.MockTransport(handler))
    await store.put("reflection:t:2024-01-01T00:00:00.000Z:abc", RECORD)
    value = await store.get("reflection:t:2024-01-01T00:00:00.000Z:abc")

    post = seen[0]
    assert post.method == "POST"
    assert post.url.path == "/set/reflection:t:2024-01-01T00:00:00.000Z:abc"
    assert post.headers["authorization"] == "Bearer kv-token"
    assert json.loads(post.content) == RECORD
    assert value == RECORD


@pytest.mark.anyio
async def test_rest_store_missing_key_is_none():
    store = RestKVStore(
        "https://kv.test",
        "kv-token",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"result": None})),
    )
    assert await store.get("absent") is None


@pytest.mark.anyio
async def test_rest_store_raises_on_error_status():
    store = RestKVStore(
        "https://kv.test",
        "kv-token",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "Unauthorized"})),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await store.put("k", RECORD)


def test_get_store_defaults_to_in_memory(monkeypatch):
    for name in ("KV_REST_API_URL", "KV_REST_API_TOKEN", "KV_DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    assert isinstance(get_store(), InMemoryKVStore)


def test_get_store_prefers_rest(monkeypatch, tmp_path):
    monkeypatch.setenv("KV_REST_API_URL", "https://kv.test")
    monkeypatch.setenv("KV_REST_API_TOKEN", "kv-token")
    monkeypatch.setenv("KV_DATABASE_URL", f"sqlite:///{tmp_path / 'kv.db'}")
    assert isinstance(get_store(), RestKVStore)


def test_get_store_uses_database_url(monkeypatch, tmp_path):
    monkeypatch.delenv("KV_REST_API_URL", raising=False)
    monkeypatch.setenv("KV_DATABASE_URL", f"sqlite:///{tmp_path / 'kv.db'}")
    kv_store._database_store.cache_clear()

    store = get_store()

    assert isinstance(store, DatabaseKVStore)
    assert get_store() is store


def test_get_store_warns_once_about_in_memory_fallback(monkeypatch, caplog):
    for name in ("KV_REST_API_URL", "KV_REST_API_TOKEN", "KV_DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(kv_store, "_dev_store_warned", False)

    with caplog.at_level(logging.WARNING, logger="chat_relay.kv_store"):
        get_store()
        get_store()

    warnings = [r for r in caplog.records if r.name == "chat_relay.kv_store" and r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "process memory" in warnings[0].getMessage()
