"""Plugin system: registry config, manifest loading and tool invocation.

Imports are lazy so lightweight components like PluginConfigService can
be used (e.g. by manage_plugins.py) without pulling in aiohttp.
"""

__all__ = [
    "PluginManifest",
    "ToolDescriptor",
    "WidgetDescriptor",
    "PluginConfig",
    "PluginConfigService",
    "ManifestClient",
    "ToolInvocationProxy",
    "PluginRegistry",
    "PluginState",
    "Catalog",
    "LoadResult",
    "WebFetchTool",
]


def __getattr__(name):
    if name in ("PluginManifest", "ToolDescriptor", "WidgetDescriptor"):
        from api.plugins import manifest
        return getattr(manifest, name)
    if name in ("PluginConfig", "PluginConfigService"):
        from api.plugins import config
        return getattr(config, name)
    if name == "ManifestClient":
        from api.plugins.manifest_client import ManifestClient
        return ManifestClient
    if name == "ToolInvocationProxy":
        from api.plugins.proxy import ToolInvocationProxy
        return ToolInvocationProxy
    if name in ("PluginRegistry", "PluginState", "Catalog", "LoadResult"):
        from api.plugins import registry
        return getattr(registry, name)
    if name == "WebFetchTool":
        from api.plugins.builtin import WebFetchTool
        return WebFetchTool
    raise AttributeError(f"module 'api.plugins' has no attribute {name!r}")
