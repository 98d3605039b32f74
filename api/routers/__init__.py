"""API routers package."""

from .agent import router as agent_router
from .plugins import router as plugins_router

__all__ = ["agent_router", "plugins_router"]
