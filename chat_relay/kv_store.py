"""
Key-value stores for reflection records.

The backend is picked per request from the environment:

- ``KV_REST_API_URL`` + ``KV_REST_API_TOKEN``: Upstash-compatible REST store
  (the protocol behind Vercel KV);
- ``KV_DATABASE_URL``: SQLAlchemy table, see ``chat_relay.db_store``;
- otherwise a process-local dict, good for development only.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Interface the relay needs from a key-value backend."""

    @abstractmethod
    async def put(self, key: str, value: Dict[str, Any]) -> None:
        """Store a JSON-serialisable value under key, replacing any previous one."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value stored under key, or None."""


class InMemoryKVStore(KeyValueStore):
    """
    Dev store:
    - persists only while the process runs
    - thread-safe via a lock
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, Dict[str, Any]] = {}

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._items[key] = dict(value)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._items.get(key)
            return dict(value) if value is not None else None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._items if k.startswith(prefix))


class RestKVStore(KeyValueStore):
    """Upstash-style REST key-value store."""

    def __init__(
        self,
        url: str,
        token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url,
            headers={"Authorization": f"Bearer {self.token}"},
            transport=self.transport,
            timeout=self.timeout,
        )

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        async with self._client() as client:
            response = await client.post(f"/set/{quote(key, safe=':')}", content=json.dumps(value))
            response.raise_for_status()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(f"/get/{quote(key, safe=':')}")
            response.raise_for_status()
            result = response.json().get("result")
        if result is None:
            return None
        return json.loads(result) if isinstance(result, str) else result


_dev_store = InMemoryKVStore()
_dev_store_warned = False


@lru_cache(maxsize=4)
def _database_store(database_url: str) -> KeyValueStore:
    from chat_relay.db_store import DatabaseKVStore

    return DatabaseKVStore(database_url)


def get_store() -> KeyValueStore:
    """Pick the key-value backend configured in the environment."""
    rest_url = os.getenv("KV_REST_API_URL")
    rest_token = os.getenv("KV_REST_API_TOKEN")
    if rest_url and rest_token:
        return RestKVStore(rest_url, rest_token)

    database_url = os.getenv("KV_DATABASE_URL")
    if database_url:
        return _database_store(database_url)

    global _dev_store_warned
    if not _dev_store_warned:
        logger.warning(
            "No key-value backend configured (KV_REST_API_URL/KV_REST_API_TOKEN or KV_DATABASE_URL), "
            "reflections are kept in process memory only"
        )
        _dev_store_warned = True
    return _dev_store
