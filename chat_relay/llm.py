"""
Client for the upstream chat-completion provider (Fireworks-compatible).

One ``httpx.AsyncClient`` per call, so nothing is shared between requests.
A streamed call keeps its client open until the returned ``UpstreamStream``
is closed.
"""
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from chat_relay.errors import RelayError, UpstreamError

logger = logging.getLogger(__name__)


class UpstreamStream:
    """An open event-stream response from the provider."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class UpstreamClient:
    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _headers(api_key: str, stream: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    async def complete(self, payload: Dict[str, Any], api_key: str) -> Any:
        """POST the payload and return the decoded JSON body."""
        async with self._client() as client:
            try:
                response = await client.post(self.url, json=payload, headers=self._headers(api_key))
            except httpx.RequestError as exc:
                raise RelayError(f"Could not reach inference API: {exc}") from exc

            if not response.is_success:
                logger.error(f"Fireworks API error: {response.status_code} {response.text}")
                raise UpstreamError(response.status_code, response.text)

            try:
                return response.json()
            except ValueError as exc:
                raise RelayError(f"Inference API returned invalid JSON: {exc}") from exc

    async def open_stream(self, payload: Dict[str, Any], api_key: str) -> UpstreamStream:
        """POST the payload asking for an event-stream and return the open stream.

        The caller owns the returned stream and must ``aclose`` it.
        """
        client = self._client()
        request = client.build_request(
            "POST", self.url, json=payload, headers=self._headers(api_key, stream=True)
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.RequestError as exc:
            await client.aclose()
            raise RelayError(f"Could not reach inference API: {exc}") from exc

        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            await client.aclose()
            logger.error(f"Fireworks API error: {response.status_code} {body}")
            raise UpstreamError(response.status_code, body)

        return UpstreamStream(client, response)
