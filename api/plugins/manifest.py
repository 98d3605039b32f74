"""Plugin manifest model - describes a remote plugin's tools and widgets.

The manifest is untrusted input fetched from ``GET {base}/manifest.json``.
Two shapes are accepted and normalised to the same model:

- list form::

    {"tools": [{"name": "getGames", "description": "...",
                "endpoint": "/api/tools/getGames", "parameters": {...}}]}

- object form (older plugin servers)::

    {"tools": {"getGames": {"modelDescription": "...", "path": "/api/getGame",
                            "type": "widget"}}}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TOOL_KIND_FUNCTION = "function"
TOOL_KIND_WIDGET = "widget"

EMPTY_PARAMETER_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


class ToolDescriptor(BaseModel):
    """A tool exposed by a plugin, bound to an HTTP endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Tool name, unique across plugins")
    description: str = Field(default="", description="Description shown to the model")
    endpoint: str = Field(..., description="Path appended to the plugin URL, e.g. '/api/tools/getGames'")
    parameter_schema: Dict[str, Any] = Field(
        default_factory=lambda: dict(EMPTY_PARAMETER_SCHEMA),
        alias="parameters",
        description="JSON Schema for the arguments, passed through opaquely",
    )
    kind: str = Field(default=TOOL_KIND_FUNCTION, alias="type", description="function | widget")

    @field_validator("parameter_schema", mode="before")
    @classmethod
    def schema_default(cls, v: Any) -> Any:
        return dict(EMPTY_PARAMETER_SCHEMA) if v is None else v

    @field_validator("kind", mode="before")
    @classmethod
    def kind_default(cls, v: Any) -> str:
        return TOOL_KIND_WIDGET if v == TOOL_KIND_WIDGET else TOOL_KIND_FUNCTION

    @property
    def is_widget(self) -> bool:
        return self.kind == TOOL_KIND_WIDGET


class WidgetDescriptor(BaseModel):
    """A renderable view, returned to the caller as a link."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    title: str
    description: Optional[str] = None
    url: str = Field(..., description="Path relative to the plugin URL, e.g. '/widgets/games'")


class PluginManifest(BaseModel):
    """Plugin manifest served by a plugin at /manifest.json."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Unique plugin identifier")
    name: str = Field(..., description="Human-readable plugin name")
    version: str = Field(..., description="Plugin version")
    description: Optional[str] = None
    author: Optional[str] = None
    tools: List[ToolDescriptor] = Field(default_factory=list)
    widgets: List[WidgetDescriptor] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def version_as_string(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="before")
    @classmethod
    def normalize_collections(cls, data: Any) -> Any:
        """Accept the object form of ``tools`` and ``widgets`` and null lists."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        tools = data.get("tools")
        if tools is None:
            data["tools"] = []
        elif isinstance(tools, dict):
            data["tools"] = [_tool_from_mapping(name, entry) for name, entry in tools.items()]

        widgets = data.get("widgets")
        if widgets is None:
            data["widgets"] = []
        elif isinstance(widgets, dict):
            data["widgets"] = [
                {"id": widget_id, **entry} if isinstance(entry, dict) else entry
                for widget_id, entry in widgets.items()
            ]
        return data


def _tool_from_mapping(name: str, entry: Any) -> Any:
    """Convert one entry of the object form into list-form fields."""
    if not isinstance(entry, dict):
        return entry
    return {
        "name": entry.get("name", name),
        "description": entry.get("description") or entry.get("modelDescription", ""),
        "endpoint": entry.get("endpoint") or entry.get("path"),
        "parameters": entry.get("parameters"),
        "type": entry.get("type"),
    }
