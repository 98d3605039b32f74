"""Manifest client - fetches and validates a plugin's capability manifest."""

import asyncio
import json
import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from api.constants import MANIFEST_TIMEOUT_SECONDS
from api.core.errors import ManifestHttpError, ManifestMalformed, ManifestUnreachable
from api.plugins.http import client_timeout, join_url, session_scope
from api.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)


class ManifestClient:
    """Fetches ``GET {url}/manifest.json``.

    No retries and no caching: the registry decides retry policy and
    callers control freshness.
    """

    MANIFEST_PATH = "/manifest.json"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = MANIFEST_TIMEOUT_SECONDS,
    ):
        """
        Args:
            session: Shared aiohttp session (a short-lived one is used if None)
            timeout: Total request timeout in seconds, None for no timeout
        """
        self.session = session
        self.timeout = timeout

    async def fetch_manifest(self, url: str, api_key: Optional[str] = None) -> PluginManifest:
        """Fetch and validate a manifest.

        Args:
            url: Plugin base URL
            api_key: Optional bearer token

        Returns:
            Validated PluginManifest

        Raises:
            ManifestUnreachable: Transport error or timeout
            ManifestHttpError: Non-2xx response
            ManifestMalformed: Body is not JSON or misses id/name/version
        """
        manifest_url = join_url(url, self.MANIFEST_PATH)
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            async with session_scope(self.session) as session:
                async with session.get(
                    manifest_url, headers=headers, timeout=client_timeout(self.timeout)
                ) as response:
                    if not 200 <= response.status < 300:
                        raise ManifestHttpError(manifest_url, response.status)
                    body = await response.read()
        except asyncio.TimeoutError as e:
            raise ManifestUnreachable(manifest_url, f"Timed out fetching {manifest_url}") from e
        except aiohttp.ClientError as e:
            raise ManifestUnreachable(manifest_url, f"Cannot reach {manifest_url}: {e}") from e

        try:
            data = json.loads(body.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestMalformed(manifest_url, f"Invalid JSON in {manifest_url}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestMalformed(manifest_url, f"Manifest at {manifest_url} is not a JSON object")

        try:
            manifest = PluginManifest.model_validate(data)
        except ValidationError as e:
            raise ManifestMalformed(manifest_url, f"Invalid manifest at {manifest_url}: {e}") from e

        logger.debug(f"Fetched manifest: {manifest.id} v{manifest.version} from {manifest_url}")
        return manifest
