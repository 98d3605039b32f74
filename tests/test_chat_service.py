"""Tests for ChatService persistence."""

import json

import pytest

from api.core.errors import ModelError
from api.core.model import TextDelta
from api.models.requests import ChatRequest
from api.services.agent_service import ChatService
from api.services.history_service import InMemoryHistoryStore
from helpers import ScriptedModel, make_catalog


class FlakyModel(ScriptedModel):
    """Fails the first ``failures`` steps with a retryable ModelError."""

    def __init__(self, steps, failures: int = 1):
        super().__init__(steps)
        self.failures = failures

    async def stream_step(self, messages, tools):
        if self.failures:
            self.failures -= 1
            raise ModelError("upstream unavailable", retryable=True, status=503)
        async for delta in super().stream_step(messages, tools):
            yield delta


class FakeRegistry:
    def get_catalog(self):
        return make_catalog()


async def run_turn(service: ChatService, message: str) -> list:
    events = []
    async for item in service.process_chat(ChatRequest(conversation_id="conv", message=message)):
        if item["data"] != "[DONE]":
            events.append(json.loads(item["data"]))
    return events


class TestPersistence:
    """Tests for what a turn stores."""

    @pytest.mark.asyncio
    async def test_failed_turn_stores_nothing(self):
        """A turn that ends in an error leaves the history untouched."""
        store = InMemoryHistoryStore()
        model = FlakyModel([[TextDelta("hi")]])
        service = ChatService(store, FakeRegistry(), model_factory=lambda: model)

        events = await run_turn(service, "hello")

        assert events[-1]["type"] == "error"
        assert events[-1]["retryable"] is True
        assert await store.list_since("conv") == []

    @pytest.mark.asyncio
    async def test_retry_stores_one_user_message(self):
        """Retrying after a failure stores the user message once."""
        store = InMemoryHistoryStore()
        model = FlakyModel([[TextDelta("hi there")]])
        service = ChatService(store, FakeRegistry(), model_factory=lambda: model)

        await run_turn(service, "hello")
        events = await run_turn(service, "hello")

        assert events[-1] == {"type": "finish", "finishReason": "complete"}
        messages = await store.list_since("conv")
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[0].text == "hello"
        assert messages[1].text == "hi there"

    @pytest.mark.asyncio
    async def test_turn_sees_previous_history(self):
        """The second turn's model input holds the first turn before the new user message."""
        store = InMemoryHistoryStore()
        model = ScriptedModel([[TextDelta("one")], [TextDelta("two")]])
        service = ChatService(store, FakeRegistry(), model_factory=lambda: model)

        await run_turn(service, "first")
        await run_turn(service, "second")

        sent, _ = model.calls[1]
        assert [m.role for m in sent] == ["system", "user", "assistant", "user"]
        assert sent[-1].text == "second"
