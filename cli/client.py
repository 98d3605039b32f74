"""HTTP client for the chat service."""

import asyncio
import logging
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

import aiohttp

from api.core.errors import StreamUpstreamError
from api.models.messages import Message

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = os.getenv("CHAT_SERVER_URL", "http://127.0.0.1:9090")


class ChatClient:
    """Thin aiohttp wrapper around the service's REST and streaming endpoints."""

    def __init__(self, base_url: str = DEFAULT_SERVER_URL, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self._session = session

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def stream_chat(
        self,
        conversation_id: str,
        message: str,
        max_steps: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncGenerator[bytes, None]:
        """
        POST a chat turn and yield raw body chunks as they arrive.

        Raises:
            StreamUpstreamError: The request was rejected or the connection failed
        """
        body: Dict[str, Any] = {"conversation_id": conversation_id, "message": message}
        if max_steps:
            body["max_steps"] = max_steps
        if model:
            body["model"] = model

        try:
            async with self.session.post(f"{self.base_url}/api/chat", json=body) as response:
                if response.status != 200:
                    text = await response.text()
                    raise StreamUpstreamError(
                        f"Chat request failed: {response.status} {text[:300]}",
                        retryable=response.status >= 500 or response.status == 429,
                    )
                async for chunk in response.content.iter_any():
                    yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StreamUpstreamError(f"Connection to {self.base_url} failed: {e}", retryable=True)

    async def _get_json(self, path: str, **params) -> Any:
        async with self.session.get(f"{self.base_url}{path}", params=params or None) as response:
            response.raise_for_status()
            return await response.json()

    async def list_messages(self, conversation_id: str, since: int = 0) -> List[Message]:
        data = await self._get_json(f"/api/conversations/{conversation_id}/messages", since=since)
        return [Message.model_validate(m) for m in data.get("messages", [])]

    async def get_catalog(self) -> Dict[str, Any]:
        return await self._get_json("/api/plugins/catalog")

    async def get_config(self) -> Dict[str, Any]:
        return await self._get_json("/api/config")

    async def reload_plugins(self) -> Dict[str, Any]:
        async with self.session.post(f"{self.base_url}/api/plugins/reload") as response:
            response.raise_for_status()
            return await response.json()
