"""Plugin registry - loads plugin manifests and builds the tool/widget catalog."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from api.core.errors import ChatPluginError, ManifestError, ToolError
from api.plugins.config import PluginConfig
from api.plugins.http import join_url
from api.plugins.manifest import PluginManifest, ToolDescriptor
from api.plugins.manifest_client import ManifestClient
from api.plugins.proxy import ToolInvocationProxy

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Outcome of loading one configured plugin."""

    LOADED = "loaded"
    FAILED = "failed"
    DISABLED = "disabled"


class CallableTool:
    """A tool descriptor bound to an executable invocation."""

    def __init__(self, plugin_config: PluginConfig, descriptor: ToolDescriptor, proxy: ToolInvocationProxy):
        self.plugin_config = plugin_config
        self.descriptor = descriptor
        self._proxy = proxy

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    @property
    def parameter_schema(self) -> Dict[str, Any]:
        return self.descriptor.parameter_schema

    @property
    def plugin_id(self) -> str:
        return self.plugin_config.id

    async def invoke(self, args: Any) -> Union[Any, ToolError]:
        """Run the tool. Network and HTTP failures come back as ToolError."""
        return await self._proxy.invoke(self.plugin_config, self.descriptor, args)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameter_schema,
            "type": self.descriptor.kind,
            "plugin_id": self.plugin_id,
        }

    def __repr__(self) -> str:
        return f"CallableTool({self.name!r}, plugin={self.plugin_id!r})"


@dataclass(frozen=True)
class CallableWidget:
    """A widget whose url is fully qualified against its plugin URL."""

    id: str
    title: str
    url: str
    plugin_id: str
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "plugin_id": self.plugin_id,
        }


@dataclass
class LoadedPlugin:
    """Validated, normalised in-memory form of one plugin."""

    config: PluginConfig
    manifest: PluginManifest
    tools: List[CallableTool] = field(default_factory=list)
    widgets: List[CallableWidget] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.display_name or self.manifest.name

    @property
    def version(self) -> str:
        return self.config.version or self.manifest.version

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.manifest.description,
            "author": self.manifest.author,
            "url": self.config.url,
            "tools": [t.name for t in self.tools],
            "widgets": [w.id for w in self.widgets],
        }


@dataclass(frozen=True)
class ToolCollision:
    """A tool name provided by more than one plugin (last loaded wins)."""

    name: str
    replaced_plugin_id: str
    plugin_id: str


@dataclass
class PluginLoadReport:
    """Per-plugin entry of a LoadResult."""

    plugin_id: str
    state: PluginState
    error: Optional[ChatPluginError] = None
    tool_count: int = 0
    widget_count: int = 0

    def to_dict(self) -> dict:
        return {
            "plugin_id": self.plugin_id,
            "state": self.state.value,
            "error": self.error.to_dict() if self.error else None,
            "tool_count": self.tool_count,
            "widget_count": self.widget_count,
        }


@dataclass
class LoadResult:
    """Structured report of a load/reload, never a single opaque failure."""

    reports: List[PluginLoadReport] = field(default_factory=list)
    collisions: List[ToolCollision] = field(default_factory=list)

    @property
    def loaded(self) -> List[str]:
        return [r.plugin_id for r in self.reports if r.state == PluginState.LOADED]

    @property
    def failed(self) -> List[str]:
        return [r.plugin_id for r in self.reports if r.state == PluginState.FAILED]

    def get(self, plugin_id: str) -> Optional[PluginLoadReport]:
        return next((r for r in self.reports if r.plugin_id == plugin_id), None)

    def to_dict(self) -> dict:
        return {
            "plugins": [r.to_dict() for r in self.reports],
            "loaded": self.loaded,
            "failed": self.failed,
            "collisions": [
                {"name": c.name, "replaced": c.replaced_plugin_id, "winner": c.plugin_id}
                for c in self.collisions
            ],
        }


@dataclass(frozen=True)
class Catalog:
    """Immutable snapshot of every loaded tool and widget."""

    tools: Mapping[str, CallableTool]
    widgets: Tuple[CallableWidget, ...]
    plugins: Mapping[str, LoadedPlugin]

    @classmethod
    def empty(cls) -> "Catalog":
        return cls(tools=MappingProxyType({}), widgets=(), plugins=MappingProxyType({}))

    def tool_list(self) -> List[CallableTool]:
        return list(self.tools.values())

    def to_dict(self) -> dict:
        return {
            "tools": [t.to_dict() for t in self.tools.values()],
            "widgets": [w.to_dict() for w in self.widgets],
        }


class PluginRegistry:
    """Owns the configured plugins and the current catalog.

    ``reload`` builds a new catalog off to the side and swaps a single
    reference, so readers see either the old or the new catalog.
    """

    def __init__(
        self,
        manifest_client: Optional[ManifestClient] = None,
        proxy: Optional[ToolInvocationProxy] = None,
        builtin_tools: Sequence[CallableTool] = (),
    ):
        """
        Args:
            manifest_client: Fetches plugin manifests
            proxy: Invokes plugin tools
            builtin_tools: In-process tools merged ahead of plugin tools, so plugins can replace them
        """
        self.manifest_client = manifest_client or ManifestClient()
        self.proxy = proxy or ToolInvocationProxy()
        self.builtin_tools = list(builtin_tools)
        self._configs: List[PluginConfig] = []
        self._catalog: Catalog = Catalog.empty()
        self._last_result: LoadResult = LoadResult()
        self._lock: Optional[asyncio.Lock] = None

    async def load(self, configs: Sequence[PluginConfig]) -> LoadResult:
        """Load plugins in declaration order and swap in the new catalog.

        Never raises for plugin failures; each one is recorded in the result.
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            self._configs = list(configs)
            catalog, result = await self._build(self._configs)
            self._catalog = catalog
            self._last_result = result

        logger.info(
            f"Plugin registry loaded, {len(result.loaded)}/{len(result.reports)} plugins, "
            f"{len(catalog.tools)} tools, {len(catalog.widgets)} widgets"
        )
        return result

    async def reload(self, configs: Optional[Sequence[PluginConfig]] = None) -> LoadResult:
        """Rebuild every plugin from scratch (optionally with new configs)."""
        return await self.load(self._configs if configs is None else configs)

    def get_catalog(self) -> Catalog:
        return self._catalog

    def get_tool(self, name: str) -> Optional[CallableTool]:
        return self._catalog.tools.get(name)

    def get_plugin(self, plugin_id: str) -> Optional[LoadedPlugin]:
        return self._catalog.plugins.get(plugin_id)

    @property
    def configs(self) -> List[PluginConfig]:
        return list(self._configs)

    @property
    def last_result(self) -> LoadResult:
        return self._last_result

    async def _build(self, configs: Sequence[PluginConfig]) -> Tuple[Catalog, LoadResult]:
        result = LoadResult()
        enabled: List[PluginConfig] = []
        seen = set()

        for config in configs:
            if config.id in seen:
                logger.warning(f"Plugin '{config.id}' configured twice, ignoring later entry")
                continue
            seen.add(config.id)
            if not config.enabled:
                logger.info(f"Skipped: {config.id} (disabled)")
                continue
            enabled.append(config)

        # Manifests are fetched concurrently, merged in declaration order
        outcomes = await asyncio.gather(*(self._fetch(config) for config in enabled))
        outcome_by_id = {config.id: outcome for config, outcome in zip(enabled, outcomes)}

        tools: Dict[str, CallableTool] = {tool.name: tool for tool in self.builtin_tools}
        widgets: List[CallableWidget] = []
        plugins: Dict[str, LoadedPlugin] = {}

        for config in configs:
            if config.id in plugins or any(r.plugin_id == config.id for r in result.reports):
                continue
            if not config.enabled:
                result.reports.append(PluginLoadReport(config.id, PluginState.DISABLED))
                continue

            outcome = outcome_by_id[config.id]
            if isinstance(outcome, ChatPluginError):
                logger.error(f"Failed to load plugin {config.id}: {outcome.message}")
                result.reports.append(PluginLoadReport(config.id, PluginState.FAILED, error=outcome))
                continue

            plugin = self._bind(config, outcome)
            plugins[plugin.id] = plugin
            for tool in plugin.tools:
                previous = tools.get(tool.name)
                if previous is not None:
                    logger.warning(
                        f"Tool name collision: '{tool.name}' from plugin '{plugin.id}' "
                        f"overrides plugin '{previous.plugin_id}'"
                    )
                    result.collisions.append(ToolCollision(tool.name, previous.plugin_id, plugin.id))
                tools[tool.name] = tool
            widgets.extend(plugin.widgets)

            result.reports.append(
                PluginLoadReport(
                    config.id,
                    PluginState.LOADED,
                    tool_count=len(plugin.tools),
                    widget_count=len(plugin.widgets),
                )
            )
            logger.info(
                f"Loaded {plugin.name} v{plugin.version} "
                f"({len(plugin.tools)} tools, {len(plugin.widgets)} widgets)"
            )

        catalog = Catalog(
            tools=MappingProxyType(tools),
            widgets=tuple(widgets),
            plugins=MappingProxyType(plugins),
        )
        return catalog, result

    async def _fetch(self, config: PluginConfig) -> Union[PluginManifest, ChatPluginError]:
        try:
            return await self.manifest_client.fetch_manifest(config.url, config.api_key)
        except ManifestError as e:
            return e
        except Exception as e:
            logger.error(f"Unexpected error fetching manifest for {config.id}: {e}", exc_info=True)
            return ManifestError(config.url, f"Unexpected error: {e}")

    def _bind(self, config: PluginConfig, manifest: PluginManifest) -> LoadedPlugin:
        if manifest.id != config.id:
            logger.debug(f"Manifest id '{manifest.id}' differs from configured id '{config.id}'")
        return LoadedPlugin(
            config=config,
            manifest=manifest,
            tools=[CallableTool(config, descriptor, self.proxy) for descriptor in manifest.tools],
            widgets=[
                CallableWidget(
                    id=w.id,
                    title=w.title,
                    description=w.description,
                    url=join_url(config.url, w.url),
                    plugin_id=config.id,
                )
                for w in manifest.widgets
            ],
        )
