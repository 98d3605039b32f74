"""Shared aiohttp helpers for talking to plugin services."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp


@asynccontextmanager
async def session_scope(session: Optional[aiohttp.ClientSession]) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield the shared session, or a short-lived one when none was given."""
    if session is not None and not session.closed:
        yield session
        return
    async with aiohttp.ClientSession() as owned:
        yield owned


def client_timeout(seconds: Optional[float]) -> aiohttp.ClientTimeout:
    """Total timeout for one request; None disables it."""
    return aiohttp.ClientTimeout(total=seconds)


def join_url(base: str, path: str) -> str:
    """Join a plugin base URL and an absolute endpoint path."""
    if path.startswith(("http://", "https://")):
        return path
    if not path.startswith("/"):
        path = "/" + path
    return base.rstrip("/") + path
