"""Client for the long-term memory service (Mem0 platform REST API)."""
from __future__ import annotations

from typing import Any, List, Literal, Optional, TypedDict

import httpx

from chat_relay.config import DEFAULT_MEMORY_API_URL

Role = Literal["user", "agent"]


class Turn(TypedDict):
    role: Role
    content: Any


def conversation_turn(user_content: Any, agent_content: str) -> List[Turn]:
    return [
        {"role": "user", "content": user_content},
        {"role": "agent", "content": agent_content},
    ]


class MemoryClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_MEMORY_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    async def add(self, messages: List[Turn], user_id: str) -> Any:
        """Store an ordered list of role/content turns for user_id.

        Raises httpx.HTTPError on transport failure or a non-success status.
        """
        async with httpx.AsyncClient(
            base_url=self.base_url, transport=self.transport, timeout=self.timeout
        ) as client:
            response = await client.post(
                "/v1/memories/",
                json={"messages": messages, "user_id": user_id},
                headers={"Authorization": f"Token {self.api_key}"},
            )
            response.raise_for_status()
            return response.json() if response.content else None
