"""Main FastAPI application for the plugin chat service."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env.prod
load_dotenv('.env.prod')

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api.routers import agent_router, plugins_router
from api.dependencies import (
    close_http_session,
    get_config_service,
    get_plugin_config_service,
    get_plugin_registry,
    open_http_session,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting plugin chat service")
    logger.info(f"Working directory: {Path.cwd()}")

    config_service = get_config_service()
    current_config = config_service.get_current_config()
    logger.info(f"Active model config: {config_service.get_current_config_name()}")
    logger.info(f"  - Base URL: {current_config.base_url}")
    logger.info(f"  - Model: {current_config.get_model()}")

    await open_http_session()
    registry = get_plugin_registry()
    result = await registry.load(get_plugin_config_service().get_configs())
    if result.failed:
        logger.warning(f"Plugins failed to load: {', '.join(result.failed)}")

    yield

    logger.info("Shutting down plugin chat service")
    await close_http_session()


# Create FastAPI app
app = FastAPI(
    title="Plugin Chat Service",
    description="Streaming chat with tools loaded from remote plugin services",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(agent_router)  # /api/chat, /api/conversations, /api/health
app.include_router(plugins_router)  # /api/plugins


@app.get("/")
async def root():
    return {"message": "Plugin Chat Service API", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=True)
