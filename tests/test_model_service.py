"""Tests for the OpenAI-compatible model capability."""

import json

import pytest
from aiohttp import web

from api.core.errors import ModelError
from api.core.model import TextDelta, ToolCallRequest, ToolSpec
from api.models.messages import Message, TextPart, ToolCallPart, ToolResultPart
from api.services.config_service import ModelConfig
from api.services.model_service import OpenAICompatibleModel, to_chat_messages, to_chat_tools


def sse_app(chunks=None, status=200, body=None):
    """Fake /chat/completions that streams the given chunk dicts."""
    app = web.Application()
    app["requests"] = []

    async def completions(request):
        app["requests"].append((dict(request.headers), await request.json()))
        if status != 200:
            return web.Response(status=status, text=body or "error")
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in chunks or []:
            payload = chunk if isinstance(chunk, str) else json.dumps(chunk)
            await response.write(f"data: {payload}\n\n".encode("utf-8"))
        await response.write(b"data: [DONE]\n\n")
        await response.write_eof()
        return response

    app.router.add_post("/v1/chat/completions", completions)
    return app


def delta(**fields):
    return {"choices": [{"index": 0, "delta": fields}]}


@pytest.fixture
def model_config(monkeypatch):
    def make(base_url):
        monkeypatch.setenv("TEST_MODEL_KEY", "sk-test")
        return ModelConfig(
            name="test",
            description="test",
            base_url=base_url + "/v1",
            auth_token_env="TEST_MODEL_KEY",
            model="test-model",
        )
    return make


class TestConversion:
    """Tests for history and tool conversion."""

    def test_messages(self):
        """Calls and results map to assistant tool_calls and tool messages."""
        messages = [
            Message(role="system", parts=[TextPart(text="be brief")]),
            Message.user("games?"),
            Message(role="assistant", parts=[
                TextPart(text="Checking"),
                ToolCallPart(tool_call_id="c1", tool_name="getGames", input={"team": "LAL"}),
            ]),
            Message(role="tool", parts=[ToolResultPart(tool_call_id="c1", tool_name="getGames", output={"n": 2})]),
        ]

        converted = to_chat_messages(messages)

        assert converted[0] == {"role": "system", "content": "be brief"}
        assert converted[1] == {"role": "user", "content": "games?"}
        assert converted[2]["content"] == "Checking"
        assert converted[2]["tool_calls"][0]["function"] == {"name": "getGames", "arguments": '{"team": "LAL"}'}
        assert converted[3] == {"role": "tool", "tool_call_id": "c1", "content": '{"n": 2}'}

    def test_empty_assistant_message_skipped(self):
        """An assistant message with nothing to say is dropped."""
        assert to_chat_messages([Message(role="assistant")]) == []

    def test_tools(self):
        """Parameter schemas are passed through unchanged."""
        schema = {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}
        tools = to_chat_tools([ToolSpec(name="search", description="Search", parameters=schema)])
        assert tools == [{"type": "function", "function": {"name": "search", "description": "Search", "parameters": schema}}]


class TestStreamStep:
    """Tests for OpenAICompatibleModel.stream_step."""

    @pytest.mark.asyncio
    async def test_text_and_tool_call_fragments(self, start_server, model_config):
        """Text streams through; tool-call fragments are reassembled by index."""
        app = sse_app([
            delta(role="assistant", content="Let me "),
            delta(content="check"),
            delta(tool_calls=[{"index": 0, "id": "call_1", "function": {"name": "getGames", "arguments": '{"te'}}]),
            delta(tool_calls=[{"index": 1, "id": "call_2", "function": {"name": "showGames", "arguments": ""}}]),
            delta(tool_calls=[{"index": 0, "function": {"arguments": 'am": "LAL"}'}}]),
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
        ])
        url = await start_server(app)
        model = OpenAICompatibleModel(model_config(url))

        deltas = [d async for d in model.stream_step([Message.user("hi")], [ToolSpec("getGames", "", {})])]

        assert deltas == [
            TextDelta("Let me "),
            TextDelta("check"),
            ToolCallRequest("call_1", "getGames", {"team": "LAL"}),
            ToolCallRequest("call_2", "showGames", {}),
        ]
        headers, payload = app["requests"][0]
        assert headers["Authorization"] == "Bearer sk-test"
        assert payload["model"] == "test-model"
        assert payload["stream"] is True
        assert payload["tools"][0]["function"]["name"] == "getGames"

    @pytest.mark.asyncio
    async def test_malformed_arguments_become_empty(self, start_server, model_config):
        """Unparseable argument JSON is replaced by {}."""
        app = sse_app([
            delta(tool_calls=[{"index": 0, "id": "c", "function": {"name": "getGames", "arguments": "{oops"}}]),
        ])
        url = await start_server(app)

        deltas = [d async for d in OpenAICompatibleModel(model_config(url)).stream_step([Message.user("x")], [])]

        assert deltas == [ToolCallRequest("c", "getGames", {})]
        assert "tools" not in app["requests"][0][1]

    @pytest.mark.asyncio
    async def test_malformed_chunk_skipped(self, start_server, model_config):
        """A broken chunk does not end the step."""
        url = await start_server(sse_app(["{broken", delta(content="ok")]))

        deltas = [d async for d in OpenAICompatibleModel(model_config(url)).stream_step([Message.user("x")], [])]

        assert deltas == [TextDelta("ok")]

    @pytest.mark.asyncio
    async def test_http_error(self, start_server, model_config):
        """A 401 is a terminal model error."""
        url = await start_server(sse_app(status=401, body="bad key"))

        with pytest.raises(ModelError) as exc_info:
            [d async for d in OpenAICompatibleModel(model_config(url)).stream_step([Message.user("x")], [])]

        assert exc_info.value.status == 401
        assert exc_info.value.retryable is False
        assert "bad key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self, start_server, model_config):
        """A 429 can be retried."""
        url = await start_server(sse_app(status=429))

        with pytest.raises(ModelError) as exc_info:
            [d async for d in OpenAICompatibleModel(model_config(url)).stream_step([Message.user("x")], [])]

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_error_chunk(self, start_server, model_config):
        """An error object inside the stream raises."""
        url = await start_server(sse_app([{"error": {"message": "context too long"}}]))

        with pytest.raises(ModelError, match="context too long"):
            [d async for d in OpenAICompatibleModel(model_config(url)).stream_step([Message.user("x")], [])]

    @pytest.mark.asyncio
    async def test_unreachable(self, closed_url, model_config):
        """Connection failures are retryable model errors."""
        with pytest.raises(ModelError) as exc_info:
            [d async for d in OpenAICompatibleModel(model_config(closed_url)).stream_step([Message.user("x")], [])]

        assert exc_info.value.retryable is True
