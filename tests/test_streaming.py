"""Tests for the server-side stream encoder."""

import json

import pytest

from api.core import streaming
from api.core.errors import ModelError
from api.core.streaming import StreamEncoder
from api.utils import format_frame, format_sse_message


async def events_from(items, fail_with=None):
    for item in items:
        yield item
    if fail_with is not None:
        raise fail_with


class TestEventBuilders:
    """Tests for protocol event constructors."""

    def test_finish_without_reason(self):
        """finish{} carries no reason unless given."""
        assert streaming.finish() == {"type": "finish"}
        assert streaming.finish("complete") == {"type": "finish", "finishReason": "complete"}

    def test_error_event(self):
        """error events say whether a retry makes sense."""
        assert streaming.error("down", retryable=True) == {"type": "error", "error": "down", "retryable": True}

    def test_frame_format(self):
        """A frame is one data line followed by a blank line."""
        frame = format_frame(format_sse_message(streaming.text_delta("héllo")))
        assert frame == 'data: {"type": "text-delta", "delta": "héllo"}\n\n'


class TestStreamEncoder:
    """Tests for StreamEncoder."""

    @pytest.mark.asyncio
    async def test_frames_end_with_done(self):
        """Every event becomes a data frame, then [DONE]."""
        encoder = StreamEncoder(events_from([streaming.text_delta("a"), streaming.finish()]))

        messages = [m async for m in encoder.messages()]

        assert [json.loads(m["data"]) for m in messages[:-1]] == [
            {"type": "text-delta", "delta": "a"},
            {"type": "finish"},
        ]
        assert messages[-1] == {"data": "[DONE]"}

    @pytest.mark.asyncio
    async def test_service_error_becomes_error_event(self):
        """A ChatPluginError is framed with its retryable flag."""
        encoder = StreamEncoder(events_from([streaming.text_delta("a")], fail_with=ModelError("rate limited")))

        frames = [f async for f in encoder.frames()]

        assert json.loads(frames[1][len("data: "):]) == {"type": "error", "error": "rate limited", "retryable": True}
        assert frames[-1] == "data: [DONE]\n\n"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_terminal(self):
        """Other exceptions become non-retryable error events."""
        encoder = StreamEncoder(events_from([], fail_with=ValueError("bad state")))

        messages = [m async for m in encoder.messages()]

        assert json.loads(messages[0]["data"]) == {"type": "error", "error": "bad state", "retryable": False}
        assert messages[-1]["data"] == "[DONE]"

    @pytest.mark.asyncio
    async def test_closing_encoder_closes_source(self):
        """Closing the encoder early closes the event source."""
        closed = []

        async def source():
            try:
                yield streaming.text_delta("a")
                yield streaming.text_delta("b")
            finally:
                closed.append(True)

        messages = StreamEncoder(source()).messages()
        await messages.__anext__()
        await messages.aclose()

        assert closed == [True]
