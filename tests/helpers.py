"""Test helpers: scripted model, in-memory tools and plugin server apps."""

import asyncio
import json
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional

from aiohttp import web

from api.core.model import ModelCapability, TextDelta, ToolCallRequest
from api.plugins.registry import Catalog


class ScriptedModel(ModelCapability):
    """Model that plays back one list of deltas per step."""

    def __init__(self, steps: List[List[Any]], repeat_last: bool = False):
        self.steps = steps
        self.repeat_last = repeat_last
        self.calls: List[tuple] = []
        self.closed_streams = 0
        self.aclosed = False

    async def stream_step(self, messages, tools):
        self.calls.append((list(messages), list(tools)))
        index = len(self.calls) - 1
        if index < len(self.steps):
            deltas = self.steps[index]
        elif self.repeat_last and self.steps:
            deltas = self.steps[-1]
        else:
            deltas = [TextDelta("done")]
        try:
            for delta in deltas:
                await asyncio.sleep(0)
                yield delta
        finally:
            self.closed_streams += 1

    async def aclose(self):
        self.aclosed = True


class FakeTool:
    """Stands in for a CallableTool without any HTTP."""

    def __init__(self, name: str, result: Any = None, delay: float = 0.0, plugin_id: str = "test"):
        self.name = name
        self.description = f"{name} tool"
        self.parameter_schema = {"type": "object", "properties": {}}
        self.plugin_id = plugin_id
        self.result = result
        self.delay = delay
        self.calls: List[Any] = []

    async def invoke(self, args):
        self.calls.append(args)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result(args) if callable(self.result) else self.result


def make_catalog(*tools: FakeTool) -> Catalog:
    return Catalog(
        tools=MappingProxyType({t.name: t for t in tools}),
        widgets=(),
        plugins=MappingProxyType({}),
    )


def call(tool_call_id: str, tool_name: str, tool_input: Optional[Dict[str, Any]] = None) -> ToolCallRequest:
    return ToolCallRequest(tool_call_id=tool_call_id, tool_name=tool_name, input=tool_input or {})


def manifest_dict(plugin_id: str, tools: Optional[List[Dict[str, Any]]] = None, **extra) -> Dict[str, Any]:
    data = {"id": plugin_id, "name": f"{plugin_id.upper()} plugin", "version": "1.0.0", "tools": tools or []}
    data.update(extra)
    return data


def tool_dict(name: str, endpoint: Optional[str] = None, kind: str = "function") -> Dict[str, Any]:
    return {
        "name": name,
        "description": f"{name} tool",
        "endpoint": endpoint or f"/api/tools/{name}",
        "parameters": {"type": "object", "properties": {"team": {"type": "string"}}},
        "type": kind,
    }


def plugin_app(
    manifest: Any = None,
    manifest_status: int = 200,
    tool_handlers: Optional[Dict[str, Callable]] = None,
    manifest_gate: Optional[asyncio.Event] = None,
    manifest_delay: float = 0.0,
) -> web.Application:
    """aiohttp app serving /manifest.json (dict as JSON, bytes as-is) and POST tool endpoints.

    Every request is recorded in ``app["requests"]`` as (method, path, headers, body).
    """
    app = web.Application()
    app["requests"] = []

    async def serve_manifest(request: web.Request) -> web.Response:
        app["requests"].append((request.method, request.path, dict(request.headers), None))
        if manifest_gate is not None:
            await manifest_gate.wait()
        if manifest_delay:
            await asyncio.sleep(manifest_delay)
        if isinstance(manifest, bytes):
            return web.Response(body=manifest, status=manifest_status, content_type="application/json")
        if isinstance(manifest, str):
            return web.Response(text=manifest, status=manifest_status, content_type="application/json")
        return web.json_response(manifest, status=manifest_status)

    app.router.add_get("/manifest.json", serve_manifest)

    for path, handler in (tool_handlers or {}).items():
        async def serve_tool(request: web.Request, handler=handler) -> web.StreamResponse:
            body = await request.text()
            app["requests"].append((request.method, request.path, dict(request.headers), body))
            return await handler(request, json.loads(body) if body else None)

        app.router.add_post(path, serve_tool)
    return app


