"""Tests for the tool-calling loop controller."""

import pytest

from api.core.errors import ToolError
from api.core.loop import (
    LoopLimits,
    Step,
    StopReason,
    ToolLoopController,
    evaluate_stop_conditions,
)
from api.core.model import TextDelta
from api.models.messages import Message, TextPart, ToolCallPart, ToolResultPart

from helpers import FakeTool, ScriptedModel, call, make_catalog


async def collect(controller, history):
    return [event async for event in controller.stream(history)]


def result_part(name, tool_call_id="x"):
    return ToolResultPart(tool_call_id=tool_call_id, tool_name=name, output={})


class TestStopConditions:
    """Tests for the ordered stop predicates."""

    def test_continue_when_last_step_called_tools(self):
        """A step with tool calls and no terminal result continues."""
        step = Step(index=1, content=[ToolCallPart(tool_call_id="x", tool_name="getGames"), result_part("getGames")])
        assert evaluate_stop_conditions([step], LoopLimits(max_steps=5)) is None

    def test_complete_without_tool_calls(self):
        """A text-only step completes."""
        step = Step(index=1, content=[TextPart(text="hi")])
        assert evaluate_stop_conditions([step], LoopLimits()) == StopReason.COMPLETE

    def test_terminal_tool_prefix(self):
        """A trailing result of a show* tool stops."""
        step = Step(index=1, content=[ToolCallPart(tool_call_id="x", tool_name="showGames"), result_part("showGames")])
        assert evaluate_stop_conditions([step], LoopLimits()) == StopReason.TERMINAL_TOOL

    def test_step_limit_checked_first(self):
        """When the cap and a terminal tool coincide the cap is reported."""
        step = Step(index=1, content=[ToolCallPart(tool_call_id="x", tool_name="showGames"), result_part("showGames")])
        assert evaluate_stop_conditions([step], LoopLimits(max_steps=1)) == StopReason.STEP_LIMIT

    def test_custom_prefixes(self):
        """Terminal prefixes are configurable."""
        step = Step(index=1, content=[ToolCallPart(tool_call_id="x", tool_name="renderMap"), result_part("renderMap")])
        limits = LoopLimits(terminal_tool_prefixes=("render",))
        assert evaluate_stop_conditions([step], limits) == StopReason.TERMINAL_TOOL


class TestToolLoopController:
    """Tests for ToolLoopController.stream and run."""

    @pytest.mark.asyncio
    async def test_text_only_completes(self):
        """A plain answer yields text deltas then one finish."""
        model = ScriptedModel([[TextDelta("Hello"), TextDelta(" there")]])
        controller = ToolLoopController(model, make_catalog())

        events = await collect(controller, [Message.user("hi")])

        assert events == [
            {"type": "text-delta", "delta": "Hello"},
            {"type": "text-delta", "delta": " there"},
            {"type": "finish", "finishReason": "complete"},
        ]
        result = controller.result
        assert result.reason == StopReason.COMPLETE
        assert len(result.steps) == 1
        assert result.steps[0].content == [TextPart(text="Hello there")]
        assert [m.role for m in result.new_messages] == ["assistant"]

    @pytest.mark.asyncio
    async def test_step_limit(self):
        """A model that always calls a tool stops at the cap."""
        tool = FakeTool("getGames", result={"games": []})
        model = ScriptedModel([[call("c", "getGames")]], repeat_last=True)
        controller = ToolLoopController(model, make_catalog(tool), LoopLimits(max_steps=3))

        result = await controller.run([Message.user("loop")])

        assert result.reason == StopReason.STEP_LIMIT
        assert len(result.steps) == 3
        assert len(model.calls) == 3
        assert len(tool.calls) == 3

    @pytest.mark.asyncio
    async def test_terminal_tool_stops_after_one_step(self):
        """Calling a show* tool ends the turn once its result is in."""
        show = FakeTool("showGames", result={"url": "/widgets/games"})
        model = ScriptedModel([[call("c1", "showGames")], [TextDelta("never")]])
        controller = ToolLoopController(model, make_catalog(show), LoopLimits(max_steps=20))

        events = await collect(controller, [Message.user("show games")])

        assert controller.result.reason == StopReason.TERMINAL_TOOL
        assert len(model.calls) == 1
        assert events[-1] == {"type": "finish", "finishReason": "terminal-tool"}

    @pytest.mark.asyncio
    async def test_terminal_tool_must_be_last(self):
        """A show* result followed by another result does not stop the loop."""
        show = FakeTool("showGames", result={})
        other = FakeTool("getScores", result={})
        model = ScriptedModel([[call("c1", "showGames"), call("c2", "getScores")], [TextDelta("ok")]])
        controller = ToolLoopController(model, make_catalog(show, other))

        result = await controller.run([Message.user("x")])

        assert result.reason == StopReason.COMPLETE
        assert len(result.steps) == 2

    @pytest.mark.asyncio
    async def test_results_correlated_by_id(self):
        """Outputs stream in completion order but attach in request order."""
        slow = FakeTool("getSlow", result={"v": "slow"}, delay=0.05)
        fast = FakeTool("getFast", result={"v": "fast"})
        model = ScriptedModel([[call("s", "getSlow"), call("f", "getFast")], [TextDelta("done")]])
        controller = ToolLoopController(model, make_catalog(slow, fast))

        events = await collect(controller, [Message.user("x")])

        outputs = [e for e in events if e["type"] == "tool-output-available"]
        assert [e["toolCallId"] for e in outputs] == ["f", "s"]
        assert {e["toolCallId"]: e["output"] for e in outputs} == {"s": {"v": "slow"}, "f": {"v": "fast"}}

        first_step = controller.result.steps[0]
        assert [p.tool_call_id for p in first_step.tool_results] == ["s", "f"]
        assert [p.output for p in first_step.tool_results] == [{"v": "slow"}, {"v": "fast"}]

    @pytest.mark.asyncio
    async def test_events_for_tool_step(self):
        """A tool step announces the call before its output."""
        tool = FakeTool("getGames", result={"games": 3})
        model = ScriptedModel([[TextDelta("Checking"), call("c1", "getGames", {"team": "LAL"})], [TextDelta("3 games")]])
        controller = ToolLoopController(model, make_catalog(tool))

        events = await collect(controller, [Message.user("games?")])

        assert events == [
            {"type": "text-delta", "delta": "Checking"},
            {"type": "tool-input-start", "toolCallId": "c1", "toolName": "getGames"},
            {"type": "tool-output-available", "toolCallId": "c1", "output": {"games": 3}},
            {"type": "text-delta", "delta": "3 games"},
            {"type": "finish", "finishReason": "complete"},
        ]
        assert tool.calls == [{"team": "LAL"}]

    @pytest.mark.asyncio
    async def test_history_passed_to_next_step(self):
        """The second request sees the assistant call and the tool result."""
        tool = FakeTool("getGames", result={"games": 3})
        model = ScriptedModel([[call("c1", "getGames")], [TextDelta("ok")]])
        controller = ToolLoopController(model, make_catalog(tool))
        history = [Message.user("games?")]

        result = await controller.run(history)

        second_request = model.calls[1][0]
        assert [m.role for m in second_request] == ["user", "assistant", "tool"]
        assert second_request[2].tool_results[0].tool_call_id == "c1"
        assert [m.role for m in result.new_messages] == ["assistant", "tool", "assistant"]
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_tool_call_closes_open_text(self):
        """Text after a tool call starts a new text part."""
        tool = FakeTool("getGames", result={})
        model = ScriptedModel([[TextDelta("a"), call("c1", "getGames"), TextDelta("b")], [TextDelta("done")]])
        controller = ToolLoopController(model, make_catalog(tool))

        result = await controller.run([Message.user("x")])

        kinds = [type(p).__name__ for p in result.steps[0].content]
        assert kinds == ["TextPart", "ToolCallPart", "TextPart", "ToolResultPart"]
        assert result.steps[0].content[2].text == "b"

    @pytest.mark.asyncio
    async def test_tool_error_is_folded_into_result(self):
        """A failing tool becomes an error result and the loop continues."""
        failing = FakeTool("getGames", result=ToolError(tool_name="getGames", kind="http", message="boom", status=502))
        model = ScriptedModel([[call("c1", "getGames")], [TextDelta("Sorry")]])
        controller = ToolLoopController(model, make_catalog(failing))

        result = await controller.run([Message.user("x")])

        part = result.steps[0].tool_results[0]
        assert part.is_error is True
        assert part.output["error"]["status"] == 502
        assert part.output["error"]["retryable"] is True
        assert result.reason == StopReason.COMPLETE

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """A call to a tool missing from the catalog is an error result."""
        model = ScriptedModel([[call("c1", "nope")], [TextDelta("ok")]])
        controller = ToolLoopController(model, make_catalog())

        result = await controller.run([Message.user("x")])

        part = result.steps[0].tool_results[0]
        assert part.is_error is True
        assert part.output["error"]["kind"] == "unknown-tool"

    @pytest.mark.asyncio
    async def test_unexpected_tool_exception(self):
        """An exception from a tool does not abort the loop."""
        def explode(args):
            raise RuntimeError("kaboom")

        model = ScriptedModel([[call("c1", "getGames")], [TextDelta("ok")]])
        controller = ToolLoopController(model, make_catalog(FakeTool("getGames", result=explode)))

        result = await controller.run([Message.user("x")])

        part = result.steps[0].tool_results[0]
        assert part.output["error"]["kind"] == "internal"
        assert "kaboom" in part.output["error"]["message"]

    @pytest.mark.asyncio
    async def test_closing_stream_releases_model(self):
        """Abandoning the stream closes the model's step iterator."""
        model = ScriptedModel([[TextDelta("a"), TextDelta("b"), TextDelta("c")]])
        controller = ToolLoopController(model, make_catalog())

        stream = controller.stream([Message.user("x")])
        first = await stream.__anext__()
        await stream.aclose()

        assert first == {"type": "text-delta", "delta": "a"}
        assert model.closed_streams == 1
        assert controller.result is None

    @pytest.mark.asyncio
    async def test_tool_specs_from_catalog(self):
        """The model is offered every catalog tool with its schema."""
        model = ScriptedModel([[TextDelta("ok")]])
        controller = ToolLoopController(model, make_catalog(FakeTool("getGames"), FakeTool("showGames")))

        await controller.run([Message.user("x")])

        tools = model.calls[0][1]
        assert [t.name for t in tools] == ["getGames", "showGames"]
        assert tools[0].parameters == {"type": "object", "properties": {}}
