"""Configuration management service for model provider switching (Thread-safe version)."""

import os
import logging
import threading
from typing import Dict, List, Optional
from dataclasses import dataclass

from api.constants import MODEL_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Default configuration (can be overridden by environment variable DEFAULT_MODEL_CONFIG)
_DEFAULT_FALLBACK = "openrouter"
DEFAULT_CONFIG = os.getenv("DEFAULT_MODEL_CONFIG", _DEFAULT_FALLBACK)


@dataclass
class ModelConfig:
    """Configuration for a single OpenAI-compatible model provider."""
    name: str
    description: str
    base_url: str
    auth_token_env: str  # Environment variable name for auth token
    model: str
    model_env: Optional[str] = None  # Environment variable overriding the model id
    timeout_seconds: Optional[float] = MODEL_TIMEOUT_SECONDS

    def get_auth_token(self) -> str:
        """Get auth token from environment variable."""
        return os.getenv(self.auth_token_env, "")

    def get_model(self) -> str:
        """Model id, overridable through ``model_env``."""
        if self.model_env:
            return os.getenv(self.model_env, self.model) or self.model
        return self.model

    def validate(self) -> tuple[bool, Optional[str]]:
        """
        Validate configuration.

        Returns:
            (is_valid, error_message)
        """
        # Check auth token
        if not self.get_auth_token():
            return False, f"Auth token not found (env: {self.auth_token_env})"

        # Check base_url format
        if not self.base_url.startswith(("http://", "https://")):
            return False, f"Invalid base_url format: {self.base_url}"

        return True, None


# Predefined model configurations - NO SECRETS, only metadata
PREDEFINED_CONFIGS: Dict[str, ModelConfig] = {
    "openrouter": ModelConfig(
        name="openrouter",
        description="OpenRouter (OpenAI-compatible)",
        base_url=os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        auth_token_env="OPENROUTER_API_KEY",
        model="xiaomi/mimo-v2-flash:free",
        model_env="OPENROUTER_MODEL",
    ),
    "openai": ModelConfig(
        name="openai",
        description="OpenAI",
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        auth_token_env="OPENAI_API_KEY",
        model="gpt-4o-mini",
        model_env="OPENAI_MODEL",
    ),
    "local": ModelConfig(
        name="local",
        description="Local OpenAI-compatible server (e.g. Ollama, vLLM)",
        base_url=os.getenv("LOCAL_MODEL_BASE_URL", "http://127.0.0.1:11434/v1"),
        auth_token_env="LOCAL_MODEL_API_KEY",
        model="llama3.1",
        model_env="LOCAL_MODEL",
    ),
}

# Validate that the default config exists
if DEFAULT_CONFIG not in PREDEFINED_CONFIGS:
    logger.warning(
        f"Invalid DEFAULT_MODEL_CONFIG '{DEFAULT_CONFIG}' specified in environment. "
        f"Available configs: {list(PREDEFINED_CONFIGS.keys())}. "
        f"Falling back to '{_DEFAULT_FALLBACK}'"
    )
    DEFAULT_CONFIG = _DEFAULT_FALLBACK


class ConfigService:
    """
    Configuration management service (Thread-safe version).

    - Thread-safe using threading.Lock
    - Atomic switch_config operation
    - Configuration validation
    """

    def __init__(self, default_config: str = DEFAULT_CONFIG):
        """
        Args:
            default_config: Default configuration name
        """
        self._current_config = default_config
        self._lock = threading.Lock()  # Thread safety
        if not self.switch_config(default_config):
            logger.warning(
                f"Default model config {default_config} is not usable, "
                "chat requests will fail until a valid config is selected"
            )

    def get_current_config_name(self) -> str:
        """Get the name of the current active configuration."""
        with self._lock:
            return self._current_config

    def get_current_config(self) -> ModelConfig:
        """Get the current active configuration."""
        with self._lock:
            return PREDEFINED_CONFIGS.get(
                self._current_config,
                PREDEFINED_CONFIGS[_DEFAULT_FALLBACK]
            )

    def get_config(self, config_name: str) -> Optional[ModelConfig]:
        """Look up a predefined configuration by name."""
        return PREDEFINED_CONFIGS.get(config_name)

    def get_available_configs(self) -> List[Dict]:
        """Get list of all available configurations."""
        with self._lock:
            current = self._current_config
            return [
                {
                    "name": config.name,
                    "description": config.description,
                    "base_url": config.base_url,
                    "model": config.get_model(),
                    "is_active": config.name == current
                }
                for config in PREDEFINED_CONFIGS.values()
            ]

    def switch_config(self, config_name: str) -> bool:
        """
        Switch to a different configuration (Thread-safe, atomic operation).

        Takes effect on the next chat request.
        """
        with self._lock:  # Atomic operation
            # Validate config exists
            if config_name not in PREDEFINED_CONFIGS:
                logger.error(f"Unknown config: {config_name}")
                return False

            config = PREDEFINED_CONFIGS[config_name]

            # Validate configuration
            is_valid, error_msg = config.validate()
            if not is_valid:
                logger.error(f"Invalid config {config_name}: {error_msg}")
                return False

            self._current_config = config_name
            logger.info(f"Switched to config: {config_name} (model={config.get_model()})")
            return True
