"""
Per-request control flow of the chat relay.

validating -> calling upstream -> streaming | buffering -> persisting -> responding

Only missing input, missing credentials and upstream failures end a request
with an error. Reflection persistence and memory storage are best effort:
failures are logged and the request carries on.
"""
import logging
from typing import Any, AsyncIterator, List

import httpx
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.responses import Response

from chat_relay.config import Credentials
from chat_relay.kv_store import KeyValueStore
from chat_relay.llm import UpstreamClient, UpstreamStream
from chat_relay.memory import MemoryClient, conversation_turn
from chat_relay.reflections import Reflection, ReflectionRecord, parse_reflections
from chat_relay.schemas import ChatRequest

logger = logging.getLogger(__name__)

STREAM_INTERRUPTED_EVENT = b'data: {"error": "Streaming interrupted"}\n\n'
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def extract_reply_text(data: Any) -> str:
    """Assistant text at choices[0].message.content, or "" when absent."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""


async def relay_stream(stream: UpstreamStream) -> AsyncIterator[bytes]:
    """Yield upstream chunks unmodified, ending with an error event on failure."""
    try:
        async for chunk in stream.iter_chunks():
            yield chunk
    except (httpx.HTTPError, httpx.StreamError) as exc:
        logger.error(f"Streaming error: {exc!r}")
        yield STREAM_INTERRUPTED_EVENT
    finally:
        await stream.aclose()


async def persist_reflections(
    store: KeyValueStore, reflections: List[Reflection], thread_id: str
) -> List[str]:
    """Write each reflection, returning the keys that were stored."""
    stored = []
    for reflection in reflections:
        record = ReflectionRecord.from_reflection(reflection, thread_id)
        try:
            await store.put(record.key, record.to_value())
        except Exception:
            logger.exception(f"Error storing reflection {record.key}")
            continue
        logger.info(f"Reflection stored: {record.key}")
        stored.append(record.key)
    return stored


async def remember_turn(memory: MemoryClient, user_content: Any, reply_text: str, user_id: str) -> bool:
    """Add the user/agent turn to long-term memory. Returns True when stored."""
    if not user_content or not reply_text:
        return False
    try:
        await memory.add(conversation_turn(user_content, reply_text), user_id=user_id)
    except Exception:
        logger.exception(f"Error storing conversation in memory for user_id={user_id}")
        return False
    logger.info(f"Conversation turn stored in memory for user_id={user_id}")
    return True


async def relay_chat(
    chat: ChatRequest,
    credentials: Credentials,
    *,
    upstream: UpstreamClient,
    store: KeyValueStore,
    memory: MemoryClient,
) -> Response:
    logger.info(
        f"Processing request: model={chat.model} message_count={len(chat.messages)} "
        f"stream={chat.wants_stream} tools_enabled={chat.tools_enabled}"
    )
    payload = chat.to_upstream_payload()

    if chat.wants_stream:
        stream = await upstream.open_stream(payload, credentials.inference_api_key)
        return StreamingResponse(
            relay_stream(stream),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    data = await upstream.complete(payload, credentials.inference_api_key)
    reply_text = extract_reply_text(data)

    reflections = parse_reflections(reply_text)
    await persist_reflections(store, reflections, chat.persistence_thread_id)
    await remember_turn(memory, chat.last_user_content(), reply_text, chat.memory_user_id)

    return JSONResponse(status_code=200, content=data)
