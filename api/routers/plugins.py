"""Plugin management REST API endpoints."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from api.dependencies import get_plugin_config_service, get_plugin_registry, reload_plugins
from api.models.requests import PluginConfigUpdate
from api.plugins.config import PluginConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


@router.get("")
async def list_plugins():
    """List configured plugins with the outcome of the last load."""
    config_service = get_plugin_config_service()
    registry = get_plugin_registry()
    result = registry.last_result
    plugins = []
    for config in config_service.get_configs():
        entry = config.to_dict()
        report = result.get(config.id)
        entry["state"] = report.state.value if report else None
        entry["error"] = report.error.to_dict() if report and report.error else None
        loaded = registry.get_plugin(config.id)
        if loaded:
            entry["name"] = loaded.name
            entry["version"] = loaded.version
        plugins.append(entry)
    return {"plugins": plugins, "last_load": result.to_dict()}


@router.get("/catalog")
async def get_catalog():
    """Tools and widgets currently available to the model."""
    return get_plugin_registry().get_catalog().to_dict()


@router.post("/reload")
async def reload():
    """Re-read the registry file and reload every plugin."""
    result = await reload_plugins()
    return {"message": "Plugins reloaded", "result": result.to_dict()}


@router.put("/{plugin_id}")
async def upsert_plugin(plugin_id: str, body: PluginConfigUpdate):
    """Add or replace a plugin registry entry, then reload."""
    try:
        config = PluginConfig(id=plugin_id, **body.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    get_plugin_config_service().upsert(config)
    result = await reload_plugins()
    return {
        "message": f"Plugin '{plugin_id}' saved",
        "plugin": config.to_dict(),
        "report": result.get(plugin_id).to_dict() if result.get(plugin_id) else None,
    }


@router.delete("/{plugin_id}")
async def remove_plugin(plugin_id: str):
    """Remove a plugin from the registry, then reload."""
    if not get_plugin_config_service().remove(plugin_id):
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    await reload_plugins()
    return {"message": f"Plugin '{plugin_id}' removed"}


@router.post("/{plugin_id}/enable")
async def enable_plugin(plugin_id: str):
    """Enable a plugin, then reload."""
    if not get_plugin_config_service().enable(plugin_id):
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    result = await reload_plugins()
    report = result.get(plugin_id)
    return {
        "message": f"Plugin '{plugin_id}' enabled",
        "report": report.to_dict() if report else None,
    }


@router.post("/{plugin_id}/disable")
async def disable_plugin(plugin_id: str):
    """Disable a plugin, then reload."""
    if not get_plugin_config_service().disable(plugin_id):
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    await reload_plugins()
    return {"message": f"Plugin '{plugin_id}' disabled"}
