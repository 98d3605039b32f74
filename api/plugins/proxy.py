"""Tool invocation proxy - turns a structured tool call into an HTTP POST."""

import asyncio
import json
import logging
from typing import Any, Optional, Union

import aiohttp

from api.constants import TOOL_TIMEOUT_SECONDS
from api.core.errors import (
    TOOL_ERROR_HTTP,
    TOOL_ERROR_INVALID_ARGUMENTS,
    TOOL_ERROR_NETWORK,
    TOOL_ERROR_TIMEOUT,
    ToolError,
)
from api.plugins.config import PluginConfig
from api.plugins.http import client_timeout, join_url, session_scope
from api.plugins.manifest import ToolDescriptor

logger = logging.getLogger(__name__)

# Longest error body kept in a ToolError message
MAX_ERROR_BODY = 500


def _decode_body(raw: bytes, charset: Optional[str]) -> str:
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        # Unknown charset label in Content-Type
        return raw.decode("utf-8", errors="replace")


class ToolInvocationProxy:
    """Invokes plugin tools over HTTP.

    ``invoke`` never raises for network or HTTP failures; it returns a
    ToolError value that the loop folds into the conversation.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = TOOL_TIMEOUT_SECONDS,
    ):
        """
        Args:
            session: Shared aiohttp session (a short-lived one is used if None)
            timeout: Total timeout per tool call in seconds, None for no timeout
        """
        self.session = session
        self.timeout = timeout

    async def invoke(
        self, plugin_config: PluginConfig, tool: ToolDescriptor, args: Any
    ) -> Union[Any, ToolError]:
        """Call ``POST {plugin_url}{endpoint}`` with ``args`` as the JSON body.

        Args:
            plugin_config: Owning plugin (URL and optional API key)
            tool: Tool descriptor from the plugin manifest
            args: Tool arguments, any JSON-serializable value

        Returns:
            Decoded JSON result, or a ToolError
        """
        if args is None:
            args = {}
        try:
            body = json.dumps(args, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            return self._error(tool.name, TOOL_ERROR_INVALID_ARGUMENTS, f"Arguments are not JSON serializable: {e}")

        url = join_url(plugin_config.url, tool.endpoint)
        headers = {"Content-Type": "application/json", **plugin_config.auth_headers()}
        logger.debug(f"[Tool:{tool.name}] POST {url}")

        text = await self._request(tool.name, "POST", url, data=body.encode("utf-8"), headers=headers)
        if isinstance(text, ToolError):
            return text

        result = self._decode(tool, text)
        if tool.is_widget:
            result = self._stamp_base_url(result, plugin_config.url)
        return result

    @staticmethod
    def _decode(tool: ToolDescriptor, text: str) -> Any:
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.debug(f"[Tool:{tool.name}] Non-JSON response, passing text through")
            return text

    @staticmethod
    def _stamp_base_url(result: Any, base_url: str) -> Any:
        """Let the renderer resolve a relative widget url against its plugin."""
        if isinstance(result, dict):
            return {**result, "baseURL": base_url}
        return {"data": result, "baseURL": base_url}

    @staticmethod
    def _error(tool_name: str, kind: str, message: str, status: Optional[int] = None) -> ToolError:
        error = ToolError(tool_name=tool_name, kind=kind, message=message, status=status)
        logger.warning(f"[Tool:{tool_name}] {kind} error: {message}")
        return error

    async def fetch(self, tool_name: str, url: str) -> Union[str, ToolError]:
        """``GET url`` and return the body as text, or a ToolError."""
        if not url.startswith(("http://", "https://")):
            return self._error(tool_name, TOOL_ERROR_INVALID_ARGUMENTS, f"Not an http(s) link: {url}")
        return await self._request(tool_name, "GET", url)

    async def _request(self, tool_name: str, method: str, url: str, **kwargs) -> Union[str, ToolError]:
        """Send one request; the body is decoded leniently so odd bytes never raise."""
        try:
            async with session_scope(self.session) as session:
                async with session.request(
                    method, url, timeout=client_timeout(self.timeout), **kwargs
                ) as response:
                    text = _decode_body(await response.read(), response.charset)
                    if not 200 <= response.status < 300:
                        return self._error(
                            tool_name,
                            TOOL_ERROR_HTTP,
                            f"Remote tool failed: {response.status} {response.reason or ''}".strip()
                            + (f" - {text[:MAX_ERROR_BODY]}" if text else ""),
                            status=response.status,
                        )
                    return text
        except asyncio.TimeoutError:
            return self._error(tool_name, TOOL_ERROR_TIMEOUT, f"Timed out after {self.timeout}s calling {url}")
        except aiohttp.ClientError as e:
            return self._error(tool_name, TOOL_ERROR_NETWORK, f"Cannot reach {url}: {e}")
