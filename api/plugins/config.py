"""Plugin configuration service - manages plugins/registry.json."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class PluginConfig(BaseModel):
    """One configured plugin service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Plugin identifier, unique within the registry")
    enabled: bool = True
    url: str = Field(..., description="Plugin base URL, e.g. 'http://localhost:4444'")
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    version: Optional[str] = None

    @field_validator("url")
    @classmethod
    def url_is_http(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Plugin url must be http(s): {v}")
        return v.rstrip("/")

    def auth_headers(self) -> Dict[str, str]:
        """Bearer header when an API key is configured."""
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def to_dict(self) -> dict:
        """Serialize using wire names, hiding the API key."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        if "apiKey" in data:
            data["apiKey"] = "***"
        return data


class PluginConfigService:
    """Manages the plugins/registry.json configuration file.

    Config format:
    {
        "plugins": [
            {"id": "nba", "enabled": true, "url": "http://localhost:4444"},
            {"id": "weather", "enabled": false, "url": "https://weather.example", "apiKey": "..."}
        ]
    }
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._configs: List[PluginConfig] = self._load()

    def _load(self) -> List[PluginConfig]:
        """Load configs from file, creating an empty registry if not found."""
        if not self.config_file.exists():
            logger.warning(f"Plugin registry not found at {self.config_file}, creating default registry")
            self._write({"plugins": []})
            return []

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Error loading plugin registry: {e}")
            return []

        entries = data.get("plugins", []) if isinstance(data, dict) else []
        configs: List[PluginConfig] = []
        seen = set()
        for entry in entries:
            try:
                config = PluginConfig.model_validate(entry)
            except ValidationError as e:
                logger.error(f"Invalid plugin entry in {self.config_file}: {e}")
                continue
            if config.id in seen:
                logger.warning(f"Duplicate plugin id '{config.id}' in registry, keeping first")
                continue
            seen.add(config.id)
            configs.append(config)
        return configs

    def _write(self, data: Dict[str, Any]) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _save(self) -> None:
        """Save config to file."""
        self._write({
            "plugins": [c.model_dump(by_alias=True, exclude_none=True) for c in self._configs]
        })
        logger.debug(f"Saved plugin registry to {self.config_file}")

    def get_configs(self) -> List[PluginConfig]:
        """Get all configured plugins in declaration order."""
        return list(self._configs)

    def get(self, plugin_id: str) -> Optional[PluginConfig]:
        """Get configuration for a specific plugin."""
        return next((c for c in self._configs if c.id == plugin_id), None)

    def is_enabled(self, plugin_id: str) -> bool:
        """Check if a plugin is enabled."""
        config = self.get(plugin_id)
        return bool(config and config.enabled)

    def upsert(self, config: PluginConfig) -> None:
        """Add a plugin or replace the one with the same id in place."""
        for i, existing in enumerate(self._configs):
            if existing.id == config.id:
                self._configs[i] = config
                break
        else:
            self._configs.append(config)
        self._save()
        logger.info(f"Saved plugin config: {config.id}")

    def remove(self, plugin_id: str) -> bool:
        """Remove a plugin from the registry."""
        before = len(self._configs)
        self._configs = [c for c in self._configs if c.id != plugin_id]
        if len(self._configs) == before:
            return False
        self._save()
        logger.info(f"Removed plugin: {plugin_id}")
        return True

    def _set_enabled(self, plugin_id: str, enabled: bool) -> bool:
        config = self.get(plugin_id)
        if config is None:
            return False
        if config.enabled != enabled:
            self.upsert(config.model_copy(update={"enabled": enabled}))
        return True

    def enable(self, plugin_id: str) -> bool:
        """Enable a plugin."""
        if self._set_enabled(plugin_id, True):
            logger.info(f"Enabled plugin: {plugin_id}")
            return True
        return False

    def disable(self, plugin_id: str) -> bool:
        """Disable a plugin."""
        if self._set_enabled(plugin_id, False):
            logger.info(f"Disabled plugin: {plugin_id}")
            return True
        return False

    def reload(self) -> None:
        """Reload config from disk."""
        self._configs = self._load()
