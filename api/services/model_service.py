"""Model capability backed by an OpenAI-compatible chat completions API."""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

import aiohttp

from api.core.errors import ModelError
from api.core.model import ModelCapability, ModelDelta, TextDelta, ToolCallRequest, ToolSpec
from api.models.messages import Message, TextPart, ToolCallPart, ToolResultPart
from api.plugins.http import client_timeout, join_url, session_scope
from api.services.config_service import ModelConfig

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


def to_chat_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """
    Convert conversation messages to chat-completions messages.

    Tool results become ``role: tool`` messages wherever they appear, so
    histories that keep tool outputs on assistant messages still convert.
    """
    converted: List[Dict[str, Any]] = []
    for message in messages:
        text = "".join(p.text for p in message.parts if isinstance(p, TextPart))
        calls = [p for p in message.parts if isinstance(p, ToolCallPart)]
        results = [p for p in message.parts if isinstance(p, ToolResultPart)]

        if message.role in ("system", "user"):
            converted.append({"role": message.role, "content": text})
        elif message.role == "assistant" and (text or calls):
            entry: Dict[str, Any] = {"role": "assistant", "content": text or None}
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": call.tool_call_id,
                        "type": "function",
                        "function": {
                            "name": call.tool_name,
                            "arguments": json.dumps(call.input if call.input is not None else {}, ensure_ascii=False),
                        },
                    }
                    for call in calls
                ]
            converted.append(entry)

        for result in results:
            converted.append({
                "role": "tool",
                "tool_call_id": result.tool_call_id,
                "content": json.dumps(result.output, ensure_ascii=False, default=str),
            })
    return converted


def to_chat_tools(tools: Sequence[ToolSpec]) -> List[Dict[str, Any]]:
    """Convert tool specs to function tools; parameter schemas pass through unchanged."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


class _PendingToolCall:
    """Tool call being reassembled from streamed fragments."""

    def __init__(self):
        self.id: Optional[str] = None
        self.name = ""
        self.arguments = ""

    def add(self, fragment: Dict[str, Any]):
        if fragment.get("id"):
            self.id = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            self.name += function["name"]
        if function.get("arguments"):
            self.arguments += function["arguments"]

    def build(self) -> ToolCallRequest:
        arguments: Any = {}
        if self.arguments.strip():
            try:
                arguments = json.loads(self.arguments)
            except json.JSONDecodeError:
                logger.warning(f"Malformed arguments for tool {self.name}, using {{}}: {self.arguments[:200]}")
                arguments = {}
        return ToolCallRequest(
            tool_call_id=self.id or f"call_{uuid.uuid4().hex}",
            tool_name=self.name,
            input=arguments,
        )


class OpenAICompatibleModel(ModelCapability):
    """
    Streams one step from ``{base_url}/chat/completions``.

    Responsibilities:
    - Convert history and tool catalog to the chat-completions format
    - Yield text deltas as they arrive
    - Reassemble tool-call fragments by index and yield complete calls
    - Map transport and HTTP failures to ModelError
    """

    def __init__(self, config: ModelConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            config: Provider configuration (base URL, token env, model id)
            session: Shared client session; a temporary one is used per step when None
        """
        self.config = config
        self.session = session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        token = self.config.get_auth_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _payload(self, messages: Sequence[Message], tools: Sequence[ToolSpec]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.get_model(),
            "messages": to_chat_messages(messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = to_chat_tools(tools)
        return payload

    async def stream_step(
        self, messages: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> AsyncGenerator[ModelDelta, None]:
        url = join_url(self.config.base_url, CHAT_COMPLETIONS_PATH)
        pending: Dict[int, _PendingToolCall] = {}

        try:
            async with session_scope(self.session) as session:
                async with session.post(
                    url,
                    json=self._payload(messages, tools),
                    headers=self._headers(),
                    timeout=client_timeout(self.config.timeout_seconds),
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise ModelError(
                            f"Model request failed: {response.status} {response.reason} - {body[:500]}",
                            retryable=response.status >= 500 or response.status == 429,
                            status=response.status,
                        )

                    async for raw in response.content:
                        line = raw.decode("utf-8", errors="replace").strip()
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning(f"Skipping malformed model chunk: {data[:200]}")
                            continue
                        if not isinstance(chunk, dict):
                            continue

                        if chunk.get("error"):
                            error = chunk["error"]
                            message = error.get("message") if isinstance(error, dict) else str(error)
                            raise ModelError(f"Model returned an error: {message}")

                        for choice in chunk.get("choices") or []:
                            delta = choice.get("delta") or {}
                            content = delta.get("content")
                            if content:
                                yield TextDelta(text=content)
                            for fragment in delta.get("tool_calls") or []:
                                index = fragment.get("index", len(pending))
                                pending.setdefault(index, _PendingToolCall()).add(fragment)
        except asyncio.TimeoutError:
            raise ModelError(f"Model request to {url} timed out")
        except aiohttp.ClientError as e:
            raise ModelError(f"Model request to {url} failed: {e}")

        for index in sorted(pending):
            call = pending[index]
            if not call.name:
                logger.warning(f"Dropping tool call without a name at index {index}")
                continue
            yield call.build()
