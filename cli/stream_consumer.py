"""Streaming event consumer (client side).

Rebuilds the ordered message list from the framed chat stream. Input may
arrive split at any byte offset; only complete lines are parsed.
"""

import codecs
import json
import logging
from enum import Enum
from typing import Any, AsyncIterable, Dict, List, Optional, Union

from api.constants import STREAM_DONE
from api.core import streaming
from api.core.errors import StreamProtocolError, StreamUpstreamError
from api.models.messages import Message, TextPart, ToolResultPart

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


class UIState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"


class StreamConsumer:
    """
    Incremental consumer for one chat stream.

    Responsibilities:
    - Buffer bytes and split them into complete lines
    - Extend the open text part or start a new one on text deltas
    - Correlate tool outputs with the tool name announced for their id
    - Track a coarse UI state and a status line for rendering
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        """
        Args:
            messages: Message list to append to (e.g. history plus the user message)
        """
        self.messages: List[Message] = messages if messages is not None else []
        self.tool_names: Dict[str, str] = {}
        self.state = UIState.IDLE
        self.status = ""
        self.done = False
        self.finished = False
        self.finish_reason: Optional[str] = None
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._assistant: Optional[Message] = None
        self._open_text: Optional[TextPart] = None

    def start(self):
        """Mark the start of a response."""
        self.state = UIState.GENERATING
        self.status = "thinking"

    def feed(self, chunk: Union[bytes, str]):
        """
        Process a chunk of the response body.

        Raises:
            StreamUpstreamError: The producer sent an error event
        """
        if self.done:
            return
        if self.state == UIState.IDLE and not self.finished:
            self.start()
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            self._process_line(line)
            if self.done:
                self._buffer = ""
                break

    def close(self):
        """End of input (socket closed): flush the decoder and any final unterminated line."""
        if not self.done:
            self._buffer += self._decoder.decode(b"", final=True)
            if self._buffer:
                line, self._buffer = self._buffer, ""
                self._process_line(line)
        self._end()

    async def consume(self, chunks: AsyncIterable[Union[bytes, str]]) -> List[Message]:
        """
        Drive a whole response body through the consumer.

        Returns:
            The message list

        Raises:
            StreamUpstreamError: The producer sent an error event
        """
        self.start()
        async for chunk in chunks:
            self.feed(chunk)
            if self.done:
                break
        self.close()
        return self.messages

    def _end(self):
        self.state = UIState.IDLE
        self.status = ""
        self._open_text = None
        self._assistant = None

    def _process_line(self, line: str):
        line = line.strip()
        if not line:
            return
        if not line.startswith(DATA_PREFIX):
            logger.debug(f"Ignoring non-data line: {line[:100]}")
            return
        payload = line[len(DATA_PREFIX):].strip()
        if payload == STREAM_DONE:
            self.done = True
            self._end()
            return

        try:
            self._handle(self._parse(payload), payload)
        except StreamProtocolError as e:
            logger.error(f"{e.message}: {e.frame[:200]}")

    @staticmethod
    def _parse(payload: str) -> Dict[str, Any]:
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StreamProtocolError(f"Malformed frame ({e.msg})", payload)
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise StreamProtocolError("Frame without event type", payload)
        return event

    @staticmethod
    def _tool_call_id(event: Dict[str, Any], payload: str) -> str:
        tool_call_id = event.get("toolCallId")
        if not isinstance(tool_call_id, str) or not tool_call_id:
            raise StreamProtocolError(f"{event['type']} without a string toolCallId", payload)
        return tool_call_id

    def _handle(self, event: Dict[str, Any], payload: str = ""):
        event_type = event["type"]

        if event_type == streaming.EVENT_TEXT_DELTA:
            self._on_text_delta(str(event.get("delta") or ""))

        elif event_type == streaming.EVENT_TOOL_INPUT_START:
            tool_call_id = self._tool_call_id(event, payload)
            tool_name = event.get("toolName") or ""
            if not isinstance(tool_name, str):
                raise StreamProtocolError("tool-input-start without a string toolName", payload)
            self.tool_names[tool_call_id] = tool_name
            self.status = f"calling {tool_name}"
            self._open_text = None

        elif event_type == streaming.EVENT_TOOL_OUTPUT_AVAILABLE:
            self._on_tool_output(self._tool_call_id(event, payload), event.get("output"))

        elif event_type == streaming.EVENT_FINISH:
            self.finished = True
            self.finish_reason = event.get("finishReason")
            self.state = UIState.IDLE
            self.status = ""

        elif event_type == streaming.EVENT_ERROR:
            self._end()
            raise StreamUpstreamError(str(event.get("error") or ""), retryable=bool(event.get("retryable")))

        else:
            logger.debug(f"Ignoring unknown event type: {event_type}")

    def _on_text_delta(self, delta: str):
        if not delta:
            return
        if self._open_text is None:
            if self._assistant is None:
                self._assistant = Message(role="assistant")
                self.messages.append(self._assistant)
            self._open_text = TextPart(text="")
            self._assistant.parts.append(self._open_text)
        self._open_text.text += delta

    def _on_tool_output(self, tool_call_id: str, output: Any):
        if tool_call_id not in self.tool_names:
            logger.error(f"tool-output-available for unknown toolCallId {tool_call_id!r}, dropping")
            return
        tool_name = self.tool_names[tool_call_id]
        self.messages.append(
            Message(
                role="assistant",
                parts=[ToolResultPart(tool_call_id=tool_call_id, tool_name=tool_name, output=output)],
            )
        )
        self._assistant = None
        self._open_text = None
        self.status = "thinking"
