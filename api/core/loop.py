"""Tool-calling loop controller.

Per invocation the controller moves through::

    Requesting -> Executing -> Evaluating -> (Requesting | Done{reason})

Stop conditions are an ordered list of pure predicates over
``(steps, limits)``, evaluated left to right; the first one that holds
ends the loop with its reason.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from api.constants import MAX_STEPS, TERMINAL_TOOL_PREFIXES
from api.core import streaming
from api.core.errors import ToolError
from api.core.model import ModelCapability, TextDelta, ToolCallRequest, ToolSpec
from api.models.messages import Message, Part, TextPart, ToolCallPart, ToolResultPart
from api.plugins.registry import Catalog
from api.utils.stream_logger import StreamLogger

logger = logging.getLogger(__name__)

TOOL_ERROR_UNKNOWN = "unknown-tool"
TOOL_ERROR_INTERNAL = "internal"


class StopReason(str, Enum):
    STEP_LIMIT = "step-limit"
    TERMINAL_TOOL = "terminal-tool"
    COMPLETE = "complete"


@dataclass(frozen=True)
class LoopLimits:
    """Values the stop predicates are evaluated against."""

    max_steps: int = MAX_STEPS
    terminal_tool_prefixes: Tuple[str, ...] = TERMINAL_TOOL_PREFIXES


@dataclass
class Step:
    """One model response plus the tool executions it triggered."""

    index: int
    content: List[Part] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        return [p for p in self.content if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> List[ToolResultPart]:
        return [p for p in self.content if isinstance(p, ToolResultPart)]


StopPredicate = Callable[[Sequence[Step], LoopLimits], bool]


class StopCondition(NamedTuple):
    reason: StopReason
    predicate: StopPredicate


def step_limit_reached(steps: Sequence[Step], limits: LoopLimits) -> bool:
    return len(steps) >= limits.max_steps


def terminal_tool_called(steps: Sequence[Step], limits: LoopLimits) -> bool:
    """The last content item of the last step is a result of a terminal tool."""
    if not steps or not steps[-1].content:
        return False
    last = steps[-1].content[-1]
    return isinstance(last, ToolResultPart) and last.tool_name.startswith(limits.terminal_tool_prefixes)


def no_tool_calls(steps: Sequence[Step], limits: LoopLimits) -> bool:
    return bool(steps) and not steps[-1].tool_calls


DEFAULT_STOP_CONDITIONS: Tuple[StopCondition, ...] = (
    StopCondition(StopReason.STEP_LIMIT, step_limit_reached),
    StopCondition(StopReason.TERMINAL_TOOL, terminal_tool_called),
    StopCondition(StopReason.COMPLETE, no_tool_calls),
)


def evaluate_stop_conditions(
    steps: Sequence[Step],
    limits: LoopLimits,
    conditions: Sequence[StopCondition] = DEFAULT_STOP_CONDITIONS,
) -> Optional[StopReason]:
    """Return the reason of the first condition that holds, or None to continue."""
    for condition in conditions:
        if condition.predicate(steps, limits):
            return condition.reason
    return None


@dataclass
class LoopResult:
    """Outcome of a finished loop."""

    reason: StopReason
    steps: List[Step]
    messages: List[Message]
    new_messages: List[Message]


class ToolLoopController:
    """
    Drives the model across tool-use steps.

    Responsibilities:
    - Request a step from the model with the history and tool catalog
    - Execute the step's tool calls concurrently, correlated by id
    - Append results to the working history
    - Decide whether to continue or stop
    """

    def __init__(
        self,
        model: ModelCapability,
        catalog: Catalog,
        limits: Optional[LoopLimits] = None,
        stop_conditions: Sequence[StopCondition] = DEFAULT_STOP_CONDITIONS,
    ):
        """
        Args:
            model: Model capability producing steps
            catalog: Tool catalog snapshot used for the whole invocation
            limits: Step cap and terminal-tool prefixes
            stop_conditions: Ordered stop predicates
        """
        self.model = model
        self.catalog = catalog
        self.limits = limits or LoopLimits()
        self.stop_conditions = tuple(stop_conditions)
        self.result: Optional[LoopResult] = None
        self.stream_logger = StreamLogger(logger)

    def tool_specs(self) -> List[ToolSpec]:
        return [
            ToolSpec(name=tool.name, description=tool.description, parameters=tool.parameter_schema)
            for tool in self.catalog.tool_list()
        ]

    async def run(self, history: Sequence[Message]) -> LoopResult:
        """Run to completion without streaming."""
        async for _ in self.stream(history):
            pass
        assert self.result is not None
        return self.result

    async def stream(self, history: Sequence[Message]) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Run the loop, yielding protocol events as they happen.

        Args:
            history: Conversation so far (not mutated)

        Yields:
            text-delta, tool-input-start, tool-output-available and a final finish event

        Raises:
            ModelError: The model capability failed
        """
        messages: List[Message] = list(history)
        new_messages: List[Message] = []
        steps: List[Step] = []
        tools = self.tool_specs()

        while True:
            # Requesting
            step = Step(index=len(steps) + 1)
            self.stream_logger.log_step_start(step.index, len(messages), len(tools))
            async with aclosing(self._request(step, messages, tools)) as events:
                async for event in events:
                    yield event

            assistant = Message(role="assistant", parts=[p.model_copy() for p in step.content])
            messages.append(assistant)
            new_messages.append(assistant)
            self.stream_logger.log_text(step.text)

            # Executing
            calls = step.tool_calls
            if calls:
                results: Dict[str, ToolResultPart] = {}
                async with aclosing(self._execute(calls, results)) as events:
                    async for event in events:
                        yield event
                # Results are attached in request order
                ordered = [results[call.tool_call_id] for call in calls]
                step.content.extend(ordered)
                tool_message = Message(role="tool", parts=list(ordered))
                messages.append(tool_message)
                new_messages.append(tool_message)

            # Evaluating
            steps.append(step)
            reason = evaluate_stop_conditions(steps, self.limits, self.stop_conditions)
            if reason is not None:
                self.stream_logger.log_finish(reason.value, len(steps))
                self.result = LoopResult(
                    reason=reason, steps=steps, messages=messages, new_messages=new_messages
                )
                yield streaming.finish(reason.value)
                return

    async def _request(
        self, step: Step, messages: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> AsyncGenerator[Dict[str, Any], None]:
        deltas = self.model.stream_step(messages, tools)
        open_text: Optional[TextPart] = None
        try:
            async for delta in deltas:
                if isinstance(delta, TextDelta):
                    if not delta.text:
                        continue
                    if open_text is None:
                        open_text = TextPart(text="")
                        step.content.append(open_text)
                    open_text.text += delta.text
                    yield streaming.text_delta(delta.text)
                elif isinstance(delta, ToolCallRequest):
                    open_text = None
                    step.content.append(
                        ToolCallPart(
                            tool_call_id=delta.tool_call_id,
                            tool_name=delta.tool_name,
                            input=delta.input,
                        )
                    )
                    self.stream_logger.log_tool_call(delta.tool_name, delta.tool_call_id, delta.input)
                    yield streaming.tool_input_start(delta.tool_call_id, delta.tool_name)
                else:
                    logger.warning(f"Ignoring unknown model delta: {delta!r}")
        finally:
            aclose = getattr(deltas, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _execute(
        self, calls: Sequence[ToolCallPart], results: Dict[str, ToolResultPart]
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Run all calls concurrently; yield outputs in completion order."""
        pending = {asyncio.create_task(self._invoke(call)): call for call in calls}
        try:
            while pending:
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    call = pending.pop(task)
                    part = task.result()
                    results[call.tool_call_id] = part
                    self.stream_logger.log_tool_result(part.tool_name, part.tool_call_id, part.output, part.is_error)
                    yield streaming.tool_output_available(call.tool_call_id, part.output)
        finally:
            for task in pending:
                task.cancel()

    async def _invoke(self, call: ToolCallPart) -> ToolResultPart:
        tool = self.catalog.tools.get(call.tool_name)
        if tool is None:
            outcome: Any = ToolError(
                tool_name=call.tool_name,
                kind=TOOL_ERROR_UNKNOWN,
                message=f"Tool '{call.tool_name}' is not available",
            )
        else:
            try:
                outcome = await tool.invoke(call.input)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Tool {call.tool_name} raised unexpectedly: {e}", exc_info=True)
                outcome = ToolError(tool_name=call.tool_name, kind=TOOL_ERROR_INTERNAL, message=str(e))

        if isinstance(outcome, ToolError):
            return ToolResultPart(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                output=outcome.to_output(),
                is_error=True,
            )
        return ToolResultPart(tool_call_id=call.tool_call_id, tool_name=call.tool_name, output=outcome)
