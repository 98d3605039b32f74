"""Shared fixtures for local plugin servers."""

from typing import List

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


@pytest_asyncio.fixture
async def start_server():
    """Start aiohttp apps on random local ports; returns their base URL."""
    servers: List[TestServer] = []

    async def start(app: web.Application) -> str:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("")).rstrip("/")

    yield start

    for server in servers:
        await server.close()


@pytest_asyncio.fixture
async def closed_url():
    """URL of a server that has been shut down (connection refused)."""
    server = TestServer(web.Application())
    await server.start_server()
    url = str(server.make_url("")).rstrip("/")
    await server.close()
    return url
