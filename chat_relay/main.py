import json

from fastapi import Depends, FastAPI, Request
from starlette.responses import Response

from chat_relay import config
from chat_relay.dependencies import MemoryFactory, get_kv_store, get_memory_factory, get_upstream_client
from chat_relay.errors import (
    BadRequestError,
    MethodNotAllowedError,
    RelayError,
    relay_error_handler,
    unhandled_error_handler,
)
from chat_relay.kv_store import KeyValueStore
from chat_relay.llm import UpstreamClient
from chat_relay.cors_middleware import CORSHeadersMiddleware
from chat_relay.logging_middleware import RequestLoggingMiddleware
from chat_relay.relay import relay_chat
from chat_relay.schemas import parse_chat_request

config.configure_logging()

# every method is routed here so unsupported ones get the JSON 405 body
CHAT_ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

app = FastAPI(title="Chat Relay", version="0.1.0")
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CORSHeadersMiddleware)
app.add_exception_handler(RelayError, relay_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "service": "chat-relay",
        "env": config.app_env(),
    }


async def _read_json(request: Request):
    raw = await request.body()
    try:
        return json.loads(raw) if raw else None
    except ValueError as exc:
        raise BadRequestError(f"Request body is not valid JSON: {exc}") from exc


@app.api_route("/api/chat", methods=CHAT_ROUTE_METHODS)
async def chat(
    request: Request,
    upstream: UpstreamClient = Depends(get_upstream_client),
    store: KeyValueStore = Depends(get_kv_store),
    memory_factory: MemoryFactory = Depends(get_memory_factory),
):
    if request.method == "OPTIONS":
        return Response(status_code=200)
    if request.method != "POST":
        raise MethodNotAllowedError(request.method)

    credentials = config.load_credentials()
    chat_request = parse_chat_request(await _read_json(request))

    return await relay_chat(
        chat_request,
        credentials,
        upstream=upstream,
        store=store,
        memory=memory_factory(credentials.memory_api_key),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("chat_relay.main:app", host="127.0.0.1", port=8000, reload=True)
