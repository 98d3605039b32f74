"""Global constants for the plugin chat service."""

import os
from pathlib import Path
from typing import Optional, Tuple


def _optional_float(name: str) -> Optional[float]:
    """Read an optional positive float from the environment (unset = None)."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = float(raw)
    return value if value > 0 else None


def _csv(name: str, default: str) -> Tuple[str, ...]:
    return tuple(p.strip() for p in os.getenv(name, default).split(",") if p.strip())


# Directory paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent

_registry_env = os.getenv("PLUGIN_REGISTRY_FILE", "")
if _registry_env:
    _registry_path = Path(_registry_env)
    PLUGIN_REGISTRY_FILE = _registry_path if _registry_path.is_absolute() else (PROJECT_ROOT / _registry_path).resolve()
else:
    PLUGIN_REGISTRY_FILE = PROJECT_ROOT / "plugins" / "registry.json"

# Tool-calling loop
MAX_STEPS = int(os.getenv("CHAT_MAX_STEPS", "20"))
TERMINAL_TOOL_PREFIXES = _csv("TERMINAL_TOOL_PREFIXES", "show")

# In-process tools available next to plugin tools (empty string disables them)
BUILTIN_TOOLS = _csv("BUILTIN_TOOLS", "webfetch")

# Timeouts (seconds). Unset means no timeout; set per deployment.
TOOL_TIMEOUT_SECONDS = _optional_float("TOOL_TIMEOUT_SECONDS")
MANIFEST_TIMEOUT_SECONDS = _optional_float("MANIFEST_TIMEOUT_SECONDS")
MODEL_TIMEOUT_SECONDS = _optional_float("MODEL_TIMEOUT_SECONDS")

# Streaming protocol
STREAM_DONE = "[DONE]"
