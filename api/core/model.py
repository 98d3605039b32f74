"""Model capability interface used by the tool-calling loop."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Sequence, Union

from api.models.messages import Message


@dataclass(frozen=True)
class TextDelta:
    """A fragment of model text."""

    text: str


@dataclass(frozen=True)
class ToolCallRequest:
    """A complete tool call requested by the model."""

    tool_call_id: str
    tool_name: str
    input: Any = field(default_factory=dict)


ModelDelta = Union[TextDelta, ToolCallRequest]


@dataclass(frozen=True)
class ToolSpec:
    """What the model is told about one tool."""

    name: str
    description: str
    parameters: Dict[str, Any]


class ModelCapability(ABC):
    """Produces one step of model output for a message history.

    Implementations must support early abandonment: closing the iterator
    returned by ``stream_step`` releases the underlying connection.
    """

    @abstractmethod
    def stream_step(
        self, messages: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> AsyncIterator[ModelDelta]:
        """Stream text deltas and tool-call requests for one step.

        Raises:
            ModelError: The model could not produce a step
        """
        ...

    async def aclose(self) -> None:
        """Release resources held by the capability."""
        pass
