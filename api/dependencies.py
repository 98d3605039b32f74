"""Dependency injection container for services."""

import logging
from typing import Optional

import aiohttp

from api.constants import BUILTIN_TOOLS, PLUGIN_REGISTRY_FILE
from api.core.model import ModelCapability
from api.plugins.builtin import create_builtin_tools
from api.plugins.config import PluginConfigService
from api.plugins.manifest_client import ManifestClient
from api.plugins.proxy import ToolInvocationProxy
from api.plugins.registry import PluginRegistry
from api.services.agent_service import ChatService
from api.services.config_service import ConfigService
from api.services.history_service import InMemoryHistoryStore
from api.services.model_service import OpenAICompatibleModel

logger = logging.getLogger(__name__)

# ============================================================================
# Global service instances (Singleton pattern, but exposed via functions for easier testing/mocking)
# ============================================================================

_http_session: Optional[aiohttp.ClientSession] = None
_plugin_config_service_instance = None
_plugin_registry_instance = None
_history_store_instance = None
_config_service_instance = None
_chat_service_instance = None


async def open_http_session() -> aiohttp.ClientSession:
    """Create the shared HTTP session (must run inside the event loop)."""
    global _http_session
    if _http_session is None or _http_session.closed:
        _http_session = aiohttp.ClientSession()
        logger.info("Created shared aiohttp ClientSession")
    if _plugin_registry_instance is not None:
        _plugin_registry_instance.manifest_client.session = _http_session
        _plugin_registry_instance.proxy.session = _http_session
    return _http_session


async def close_http_session() -> None:
    """Close the shared HTTP session."""
    global _http_session
    if _http_session is not None and not _http_session.closed:
        await _http_session.close()
        logger.info("Closed shared aiohttp ClientSession")
    _http_session = None


def get_plugin_config_service() -> PluginConfigService:
    """Get plugin config service (singleton)."""
    global _plugin_config_service_instance
    if _plugin_config_service_instance is None:
        _plugin_config_service_instance = PluginConfigService(PLUGIN_REGISTRY_FILE)
        logger.info(f"Created PluginConfigService instance ({PLUGIN_REGISTRY_FILE})")
    return _plugin_config_service_instance


def get_plugin_registry() -> PluginRegistry:
    """Get plugin registry (singleton). Loading happens at startup."""
    global _plugin_registry_instance
    if _plugin_registry_instance is None:
        proxy = ToolInvocationProxy(session=_http_session)
        _plugin_registry_instance = PluginRegistry(
            manifest_client=ManifestClient(session=_http_session),
            proxy=proxy,
            builtin_tools=create_builtin_tools(BUILTIN_TOOLS, proxy),
        )
        logger.info("Created PluginRegistry instance")
    return _plugin_registry_instance


def get_history_store() -> InMemoryHistoryStore:
    """Get history store (singleton)."""
    global _history_store_instance
    if _history_store_instance is None:
        _history_store_instance = InMemoryHistoryStore()
        logger.info("Created InMemoryHistoryStore instance")
    return _history_store_instance


def get_config_service() -> ConfigService:
    """Get config service (singleton)."""
    global _config_service_instance
    if _config_service_instance is None:
        _config_service_instance = ConfigService()
        logger.info("Created ConfigService instance")
    return _config_service_instance


def get_model(config_name: Optional[str] = None) -> ModelCapability:
    """Model capability for a named or the active config (new per turn so config switches apply)."""
    config_service = get_config_service()
    config = config_service.get_config(config_name) if config_name else None
    if config is None:
        config = config_service.get_current_config()
    return OpenAICompatibleModel(config, session=_http_session)


def get_chat_service() -> ChatService:
    """Get chat service (singleton)."""
    global _chat_service_instance
    if _chat_service_instance is None:
        _chat_service_instance = ChatService(
            history_store=get_history_store(),
            registry=get_plugin_registry(),
            model_factory=get_model,
        )
        logger.info("Created ChatService instance")
    return _chat_service_instance


async def reload_plugins():
    """Re-read the registry file and reload every plugin."""
    config_service = get_plugin_config_service()
    config_service.reload()
    return await get_plugin_registry().reload(config_service.get_configs())


# Test utility function (for unit testing - resets all singletons)
def reset_services():
    """Reset all service instances (only for testing)."""
    global _http_session, _plugin_config_service_instance, _plugin_registry_instance
    global _history_store_instance, _config_service_instance, _chat_service_instance

    _http_session = None
    _plugin_config_service_instance = None
    _plugin_registry_instance = None
    _history_store_instance = None
    _config_service_instance = None
    _chat_service_instance = None
    logger.info("Reset all service instances")
