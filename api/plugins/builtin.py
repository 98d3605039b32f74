"""Built-in tools that ship with the service instead of a plugin."""

import logging
from typing import Any, Callable, Dict, List, Sequence, Union

from api.core.errors import TOOL_ERROR_INVALID_ARGUMENTS, ToolError
from api.plugins.manifest import ToolDescriptor
from api.plugins.proxy import ToolInvocationProxy
from api.plugins.registry import CallableTool

logger = logging.getLogger(__name__)

BUILTIN_PLUGIN_ID = "core"


class WebFetchTool(CallableTool):
    """Fetches a web page by link and returns its text. Served in-process under the ``core`` plugin id."""

    NAME = "webfetch"

    def __init__(self, proxy: ToolInvocationProxy):
        self.plugin_config = None
        self._proxy = proxy
        self.descriptor = ToolDescriptor(
            name=self.NAME,
            description="Fetches data from the web by link. Never use links returned by show tools here.",
            endpoint="",
            parameters={
                "type": "object",
                "properties": {"link": {"type": "string", "description": "http(s) URL to fetch"}},
                "required": ["link"],
            },
        )

    @property
    def plugin_id(self) -> str:
        return BUILTIN_PLUGIN_ID

    async def invoke(self, args: Any) -> Union[str, ToolError]:
        link = args.get("link") if isinstance(args, dict) else None
        if not isinstance(link, str) or not link.strip():
            logger.warning(f"[Tool:{self.name}] called without a link: {args!r}")
            return ToolError(
                tool_name=self.name,
                kind=TOOL_ERROR_INVALID_ARGUMENTS,
                message="Argument 'link' must be a non-empty string",
            )
        logger.info(f"[Tool:{self.name}] GET {link}")
        return await self._proxy.fetch(self.name, link.strip())


BUILTIN_TOOL_FACTORIES: Dict[str, Callable[[ToolInvocationProxy], CallableTool]] = {
    WebFetchTool.NAME: WebFetchTool,
}


def create_builtin_tools(names: Sequence[str], proxy: ToolInvocationProxy) -> List[CallableTool]:
    """Instantiate the named built-in tools, skipping unknown names."""
    tools: List[CallableTool] = []
    for name in names:
        factory = BUILTIN_TOOL_FACTORIES.get(name)
        if factory is None:
            logger.warning(f"Unknown built-in tool '{name}', available: {list(BUILTIN_TOOL_FACTORIES)}")
            continue
        tools.append(factory(proxy))
    return tools
