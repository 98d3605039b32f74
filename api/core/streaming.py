"""Streaming event encoder (server side).

Builds the protocol events emitted while the tool loop runs and frames
them for the response body.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from api.core.errors import ChatPluginError
from api.utils import format_done_message, format_frame, format_sse_message

logger = logging.getLogger(__name__)

EVENT_TEXT_DELTA = "text-delta"
EVENT_TOOL_INPUT_START = "tool-input-start"
EVENT_TOOL_OUTPUT_AVAILABLE = "tool-output-available"
EVENT_FINISH = "finish"
EVENT_ERROR = "error"


def text_delta(delta: str) -> Dict[str, Any]:
    return {"type": EVENT_TEXT_DELTA, "delta": delta}


def tool_input_start(tool_call_id: str, tool_name: str) -> Dict[str, Any]:
    return {"type": EVENT_TOOL_INPUT_START, "toolCallId": tool_call_id, "toolName": tool_name}


def tool_output_available(tool_call_id: str, output: Any) -> Dict[str, Any]:
    return {"type": EVENT_TOOL_OUTPUT_AVAILABLE, "toolCallId": tool_call_id, "output": output}


def finish(reason: Optional[str] = None) -> Dict[str, Any]:
    event: Dict[str, Any] = {"type": EVENT_FINISH}
    if reason:
        event["finishReason"] = reason
    return event


def error(message: str, retryable: bool = False) -> Dict[str, Any]:
    return {"type": EVENT_ERROR, "error": message, "retryable": retryable}


class StreamEncoder:
    """
    Frames a sequence of protocol events.

    Responsibilities:
    - Serialize each event as one ``data:`` frame
    - Turn a failure of the event source into an ``error`` event
    - Always terminate with ``[DONE]`` unless the client went away
    """

    def __init__(self, events: AsyncIterator[Dict[str, Any]]):
        """
        Args:
            events: Protocol events, e.g. from ToolLoopController.stream()
        """
        self.events = events

    async def messages(self) -> AsyncGenerator[Dict[str, str], None]:
        """
        Yields:
            Dicts with a 'data' key for EventSourceResponse
        """
        try:
            async for event in self.events:
                yield format_sse_message(event)
        except (GeneratorExit, asyncio.CancelledError):
            logger.info("Stream cancelled by client")
            raise
        except ChatPluginError as e:
            logger.error(f"Stream failed: {e.message}")
            yield format_sse_message(error(e.message, retryable=e.retryable))
        except Exception as e:
            logger.error(f"Unexpected error while streaming: {e}", exc_info=True)
            yield format_sse_message(error(str(e) or type(e).__name__))
        finally:
            aclose = getattr(self.events, "aclose", None)
            if aclose is not None:
                await aclose()

        yield format_done_message()

    async def frames(self) -> AsyncGenerator[str, None]:
        """Raw wire text, for transports other than EventSourceResponse."""
        async for message in self.messages():
            yield format_frame(message)
