"""FastAPI providers for the relay's external collaborators."""
from functools import partial
from typing import Callable

from chat_relay import config
from chat_relay.kv_store import KeyValueStore, get_store
from chat_relay.llm import UpstreamClient
from chat_relay.memory import MemoryClient

MemoryFactory = Callable[[str], MemoryClient]


def get_upstream_client() -> UpstreamClient:
    return UpstreamClient(url=config.upstream_url(), timeout=config.upstream_timeout())


def get_kv_store() -> KeyValueStore:
    return get_store()


def get_memory_factory() -> MemoryFactory:
    """Build memory clients once the per-request API key is known."""
    return partial(MemoryClient, base_url=config.memory_api_url())
