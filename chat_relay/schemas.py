from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chat_relay.errors import BadRequestError

SAMPLING_DEFAULTS: Dict[str, Any] = {
    "temperature": 0.6,
    "top_p": 1,
    "top_k": 40,
    "max_tokens": 4096,
    "presence_penalty": 0,
    "frequency_penalty": 0,
}

PERSISTENCE_DEFAULT_THREAD = "unknown-thread"
MEMORY_DEFAULT_USER = "default-user"


class ChatRequest(BaseModel):
    """Inbound chat-completion request.

    ``model`` and ``messages`` are optional at the schema level so that a
    missing field is reported by ``missing_fields`` with a readable message
    rather than a pydantic error dump.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    model: Optional[str] = Field(None, description="Upstream model id")
    messages: Optional[List[Dict[str, Any]]] = Field(None, description="Ordered role/content messages")
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stream: Optional[bool] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Any] = None
    current_thread_id: Optional[str] = Field(
        None,
        alias="currentThreadId",
        description="Caller conversation id, namespaces reflections and memories",
    )

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.model:
            missing.append("model")
        if not self.messages:
            missing.append("messages")
        return missing

    @property
    def wants_stream(self) -> bool:
        return bool(self.stream)

    @property
    def tools_enabled(self) -> bool:
        return bool(self.tools)

    @property
    def persistence_thread_id(self) -> str:
        return self.current_thread_id or PERSISTENCE_DEFAULT_THREAD

    @property
    def memory_user_id(self) -> str:
        return self.current_thread_id or MEMORY_DEFAULT_USER

    def last_user_content(self) -> Any:
        """Content of the most recent message sent with role ``user``, if any."""
        for message in reversed(self.messages or []):
            if message.get("role") == "user":
                return message.get("content")
        return None

    def to_upstream_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "messages": self.messages}
        for name, default in SAMPLING_DEFAULTS.items():
            value = getattr(self, name)
            payload[name] = default if value is None else value
        payload["stream"] = self.wants_stream

        if self.tools_enabled:
            payload["tools"] = self.tools
            if self.tool_choice:
                payload["tool_choice"] = self.tool_choice
        return payload


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate a decoded JSON body into a ChatRequest with both required fields."""
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")

    try:
        chat = ChatRequest.model_validate(body)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise BadRequestError(f"Invalid request fields: {problems}") from exc

    missing = chat.missing_fields()
    if missing:
        raise BadRequestError(f"Missing required fields: {', '.join(missing)}")
    return chat
