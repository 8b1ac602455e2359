import asyncio
import logging

import aiohttp

from tgstats.core.errors import NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

ALLOWED_PERIODS = ["overall", "7day", "1month", "3month", "6month", "12month"]
TOP_TYPES = ["topTracks", "topArtists", "topAlbums"]

# Last.fm error code for an unknown user
INVALID_USER = 6


def ensure_list(data):
    """Last.fm returns a bare object instead of a one-element list."""
    if not data:
        return []
    return data if isinstance(data, list) else [data]


class LastFMService:
    def __init__(self, session: aiohttp.ClientSession, api_key: str,
                 api_url: str = "https://ws.audioscrobbler.com/2.0/"):
        self.session = session
        self.api_key = api_key
        self.api_url = api_url

    async def _call(self, method: str, **params) -> dict:
        query = {"method": method, "api_key": self.api_key, "format": "json", **params}
        try:
            async with self.session.get(self.api_url, params=query) as resp:
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Last.fm %s failed: %s", method, e.__class__.__name__)
            raise UpstreamUnavailable("Last.fm is unavailable") from e

        if not isinstance(data, dict):
            logger.error("Last.fm %s returned a non-object body", method)
            raise UpstreamUnavailable("Last.fm is unavailable")
        if data.get("error") == INVALID_USER:
            raise NotFound("Invalid Last.fm username", "invalid_lastfm_username")
        return data

    async def get_recent_tracks(self, user: str, limit: int = 10):
        data = await self._call("user.getrecenttracks", user=user, limit=limit)
        tracks = ensure_list(data.get("recenttracks", {}).get("track"))
        current_track = tracks[0] if tracks else None
        return current_track, tracks[1:]

    async def get_user_info(self, user: str):
        data = await self._call("user.getinfo", user=user)
        return data.get("user")

    async def get_top_tracks(self, user: str, period: str, limit: int = 10):
        data = await self._call("user.gettoptracks", user=user, period=period, limit=limit)
        return ensure_list(data.get("toptracks", {}).get("track"))

    async def get_top_artists(self, user: str, period: str, limit: int = 10):
        data = await self._call("user.gettopartists", user=user, period=period, limit=limit)
        return ensure_list(data.get("topartists", {}).get("artist"))

    async def get_top_albums(self, user: str, period: str, limit: int = 10):
        data = await self._call("user.gettopalbums", user=user, period=period, limit=limit)
        return ensure_list(data.get("topalbums", {}).get("album"))

    async def get_overview(self, user: str):
        user_info = await self.get_user_info(user)
        current_track, recent_tracks = await self.get_recent_tracks(user)
        return {"currentTrack": current_track, "recentTracks": recent_tracks, "userInfo": user_info}

    async def get_top(self, user: str, top_type: str, period: str):
        fetchers = {
            "topTracks": self.get_top_tracks,
            "topArtists": self.get_top_artists,
            "topAlbums": self.get_top_albums,
        }
        return {top_type: await fetchers[top_type](user, period)}
