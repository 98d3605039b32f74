"""Stream frame formatting utilities.

Each event is one ``data: <json>`` line; the stream ends with
``data: [DONE]``.
"""

import json
import logging
from typing import Any, Dict

from api.constants import STREAM_DONE

logger = logging.getLogger(__name__)


def format_sse_message(event: Dict[str, Any]) -> Dict[str, str]:
    """
    Format a protocol event for EventSourceResponse.

    Args:
        event: Event payload with a ``type`` discriminator

    Returns:
        Dict with a 'data' key holding single-line JSON
    """
    # json.dumps escapes newlines, so one event is always one line
    ret = {"data": json.dumps(event, ensure_ascii=False, default=str)}
    # Log only at DEBUG level to reduce noise
    logger.debug(f"SSE: {event.get('type')}")
    return ret


def format_done_message() -> Dict[str, str]:
    """Terminal frame payload."""
    return {"data": STREAM_DONE}


def format_frame(message: Dict[str, str]) -> str:
    """Render a formatted message as raw wire text (frame plus blank line)."""
    return f"data: {message['data']}\n\n"
