import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from tgstats.core.errors import AppError, UpstreamUnavailable

logger = logging.getLogger(__name__)


class DownloadError(AppError):
    status_code = 400
    message = "Failed to fetch download link"
    type = "download_failed"


def track_url(url: Optional[str] = None, track_id: Optional[str] = None) -> str:
    return url or f"https://open.spotify.com/track/{track_id}"


class DownloadResolver:
    """Resolves Spotify track URLs to download links, caching results for ``ttl`` seconds."""

    def __init__(self, session: aiohttp.ClientSession, api_base: str, ttl: int = 300,
                 clock: Callable[[], float] = time.time):
        self.session = session
        self.api_base = api_base
        self.ttl = ttl
        self.clock = clock
        self._cache: Dict[str, Tuple[dict, float]] = {}

    def _cache_get(self, key: str) -> Optional[dict]:
        entry = self._cache.get(key)
        if entry and entry[1] > self.clock():
            return entry[0]
        self._cache.pop(key, None)
        return None

    def _cache_set(self, key: str, data: dict):
        now = self.clock()
        self._cache[key] = (data, now + self.ttl)
        if len(self._cache) > 500:
            expired = [k for k, v in self._cache.items() if v[1] <= now]
            for k in expired:
                del self._cache[k]

    async def resolve(self, spotify_url: str) -> dict:
        cached = self._cache_get(spotify_url)
        if cached is not None:
            return cached

        try:
            async with self.session.get(self.api_base, params={"url": spotify_url}) as resp:
                if resp.status >= 400:
                    logger.error("Download API returned %s for %s", resp.status, spotify_url)
                    raise UpstreamUnavailable("Download service unavailable")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Download API failed for %s: %s", spotify_url, e.__class__.__name__)
            raise UpstreamUnavailable("Download service unavailable") from e

        if not isinstance(data, dict):
            logger.error("Download API returned a non-object body for %s", spotify_url)
            raise UpstreamUnavailable("Download service unavailable")
        if not data.get("success"):
            raise DownloadError()

        self._cache_set(spotify_url, data)
        return data
