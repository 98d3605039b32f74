"""Conversation message models.

A message is a role plus an append-only list of parts that renders top to
bottom. Wire names are camelCase (``toolCallId``); Python code uses
snake_case attributes.
"""

import uuid
from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system", "tool"]


class TextPart(BaseModel):
    """Text produced by a user or the model. Extended in place while streaming."""

    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(BaseModel):
    """A tool call requested by the model."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(..., alias="toolCallId")
    tool_name: str = Field(..., alias="toolName")
    input: Any = None


class ToolResultPart(BaseModel):
    """Output of a tool call, correlated by ``tool_call_id``."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str = Field(..., alias="toolCallId")
    tool_name: str = Field(..., alias="toolName")
    output: Any = None
    is_error: bool = Field(default=False, alias="isError")


Part = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]


class Message(BaseModel):
    """One conversation message."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    parts: List[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", parts=[TextPart(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> List[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    def to_wire(self) -> dict:
        """Serialize with camelCase field names."""
        return self.model_dump(by_alias=True, mode="json")
