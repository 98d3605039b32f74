"""Chat business logic service."""

import logging
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Dict, List, Optional, Sequence

from api.constants import MAX_STEPS, TERMINAL_TOOL_PREFIXES
from api.core import streaming
from api.core.loop import LoopLimits, ToolLoopController
from api.core.model import ModelCapability
from api.core.streaming import StreamEncoder
from api.models.messages import Message, TextPart
from api.models.requests import ChatRequest
from api.plugins.registry import PluginRegistry
from api.services.history_service import HistoryStore
from api.utils import build_system_prompt

logger = logging.getLogger(__name__)


class ChatService:
    """
    Chat business logic service.

    Responsibilities:
    - Load history for the conversation
    - Snapshot the tool catalog for the turn
    - Run the tool loop and frame its events
    - Persist the user message with the turn's assistant and tool messages once it finishes
    """

    def __init__(
        self,
        history_store: HistoryStore,
        registry: PluginRegistry,
        model_factory: Callable[..., ModelCapability],
        max_steps: int = MAX_STEPS,
        terminal_tool_prefixes: Sequence[str] = TERMINAL_TOOL_PREFIXES,
        extra_instructions: Optional[str] = None,
    ):
        """
        Args:
            history_store: Conversation history (dependency injection)
            registry: Plugin registry providing the catalog
            model_factory: Returns the model capability for a turn, optionally for a named config
            max_steps: Default step cap
            terminal_tool_prefixes: Tool name prefixes that end a turn
            extra_instructions: Appended to the system prompt
        """
        self.history_store = history_store
        self.registry = registry
        self.model_factory = model_factory
        self.max_steps = max_steps
        self.terminal_tool_prefixes = tuple(terminal_tool_prefixes)
        self.extra_instructions = extra_instructions

    async def process_chat(self, request: ChatRequest) -> AsyncGenerator[Dict[str, str], None]:
        """
        Process one chat turn and return the SSE stream.

        Args:
            request: Chat request

        Yields:
            SSE formatted messages, ending with [DONE]
        """
        conversation_id = request.conversation_id
        history = await self.history_store.list_since(conversation_id)
        user_message = Message.user(request.message)

        catalog = self.registry.get_catalog()
        system_message = Message(
            role="system",
            parts=[TextPart(text=build_system_prompt(
                catalog.widgets, self.extra_instructions, self.terminal_tool_prefixes
            ))],
        )
        limits = LoopLimits(
            max_steps=request.max_steps or self.max_steps,
            terminal_tool_prefixes=self.terminal_tool_prefixes,
        )
        model = self.model_factory(request.model) if request.model else self.model_factory()
        controller = ToolLoopController(model, catalog, limits)

        logger.info(
            f"Chat turn: conversation={conversation_id}, history={len(history)}, "
            f"tools={len(catalog.tools)}, max_steps={limits.max_steps}, model={request.model or 'default'}"
        )

        events = self._run_turn(controller, conversation_id, user_message, [system_message, *history, user_message])
        async for message in StreamEncoder(events).messages():
            yield message

    async def _run_turn(
        self,
        controller: ToolLoopController,
        conversation_id: str,
        user_message: Message,
        messages: List[Message],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream the loop; the user message and the turn are stored together once it finishes."""
        try:
            async for event in controller.stream(messages):
                if event.get("type") == streaming.EVENT_FINISH and controller.result is not None:
                    # Persist before the finish event reaches the client
                    await self.history_store.extend(
                        conversation_id, [user_message, *controller.result.new_messages]
                    )
                    logger.info(
                        f"Chat turn finished: conversation={conversation_id}, "
                        f"steps={len(controller.result.steps)}, reason={controller.result.reason.value}"
                    )
                yield event
        finally:
            await controller.model.aclose()

    async def list_messages(self, conversation_id: str, since: int = 0) -> List[Message]:
        return await self.history_store.list_since(conversation_id, since)
