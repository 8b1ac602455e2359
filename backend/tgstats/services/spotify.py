import asyncio
import logging
from typing import Optional

import aiohttp

from tgstats.core.errors import AppError, NotFound, UpstreamUnavailable
from tgstats.services.spotify_tokens import RetryPolicy, SpotifyTokenManager

logger = logging.getLogger(__name__)

ALLOWED_PERIODS = ["overall", "7day", "1month", "3month", "6month", "12month"]
DEFAULT_PERIOD = "3month"

TIME_RANGES = {
    "overall": "long_term",
    "7day": "short_term",
    "1month": "short_term",
    "3month": "medium_term",
    "6month": "medium_term",
    "12month": "long_term",
}


class SpotifyAPIError(AppError):
    """Upstream error status; ``status`` is kept for logs, the body stays generic."""
    message = "Spotify request failed"
    type = "spotify_error"

    def __init__(self, status: int):
        self.status = status
        super().__init__()


class SpotifyService:
    def __init__(self, session: aiohttp.ClientSession, token_manager: SpotifyTokenManager,
                 api_url: str = "https://api.spotify.com/v1", retry_policy: RetryPolicy = None):
        self.session = session
        self.token_manager = token_manager
        self.api_url = api_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()

    async def _request(self, endpoint: str, token: str):
        """Returns ``(status, payload)``; the payload is ``None`` for empty bodies."""
        async with self.session.get(
            f"{self.api_url}{endpoint}", headers={"Authorization": f"Bearer {token}"}
        ) as resp:
            if resp.status == 204 or resp.status >= 400:
                return resp.status, None
            return resp.status, await resp.json(content_type=None)

    async def fetch(self, endpoint: str, token: Optional[str] = None):
        """
        GET an endpoint of the Web API.

        A 401 invalidates the token and the request is repeated once with a
        token from the manager; any other error status is raised.
        """
        for attempt in self.retry_policy.attempts():
            access_token = token or await self.token_manager.get_valid_token()
            try:
                status, data = await self._request(endpoint, access_token)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise UpstreamUnavailable("Spotify API unavailable") from e

            if status < 400:
                return data
            if self.retry_policy.should_retry(attempt, status):
                logger.info("Spotify rejected token on %s, retrying", endpoint)
                self.token_manager.invalidate(access_token)
                token = None
                continue
            logger.warning("Spotify returned %s for %s", status, endpoint)
            if status == 404:
                raise NotFound("Spotify resource not found", "spotify_not_found")
            raise SpotifyAPIError(status)

    async def get_user_profile(self, token: str = None):
        return await self.fetch("/me", token)

    async def get_currently_playing(self, token: str = None):
        try:
            data = await self.fetch("/me/player/currently-playing", token)
        except AppError:
            return None
        return (data or {}).get("item")

    async def get_recently_played(self, token: str = None, limit: int = 10):
        data = await self.fetch(f"/me/player/recently-played?limit={limit}", token)
        return (data or {}).get("items", [])

    async def get_top_tracks(self, token: str = None, time_range: str = "medium_term", limit: int = 10):
        data = await self.fetch(f"/me/top/tracks?time_range={time_range}&limit={limit}", token)
        return (data or {}).get("items", [])

    async def get_top_artists(self, token: str = None, time_range: str = "medium_term", limit: int = 10):
        data = await self.fetch(f"/me/top/artists?time_range={time_range}&limit={limit}", token)
        return (data or {}).get("items", [])

    async def get_user_playlists(self, token: str = None, limit: int = 20):
        data = await self.fetch(f"/me/playlists?limit={limit}", token)
        return (data or {}).get("items", [])

    async def get_playlist_details(self, playlist_id: str, token: str = None):
        playlist = await self.fetch(f"/playlists/{playlist_id}", token)
        tracks = await self.fetch(f"/playlists/{playlist_id}/tracks?limit=50", token)
        return {**(playlist or {}), "tracks": (tracks or {}).get("items", [])}

    async def get_album_details(self, album_id: str, token: str = None):
        return await self.fetch(f"/albums/{album_id}", token)

    async def get_saved_albums(self, token: str = None, limit: int = 20):
        data = await self.fetch(f"/me/albums?limit={limit}", token)
        return (data or {}).get("items", [])

    async def get_overview(self, token: str = None):
        profile, current, recent = await asyncio.gather(
            self.get_user_profile(token),
            self.get_currently_playing(token),
            self.get_recently_played(token),
        )
        return {"currentTrack": current, "recentTracks": recent, "userProfile": profile}
