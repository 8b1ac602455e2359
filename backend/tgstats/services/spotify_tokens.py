"""
Spotify bearer-token management.

Callers ask ``SpotifyTokenManager.get_valid_token()`` and get back a token
taken, in order, from:

1. the cached client-credentials token, while it has not expired;
2. the shared pool of externally published tokens, checked one by one
   starting at the rotation cursor;
3. a fresh client-credentials exchange, cached with a safety margin.

Consumers that see a 401 hand the token back through ``invalidate()`` and ask
once more, as described by ``RetryPolicy``.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

import aiohttp

from tgstats.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialToken:
    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_in: int


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a consumer may run a request that fails with 401."""
    max_attempts: int = 2

    def attempts(self):
        return range(1, self.max_attempts + 1)

    def should_retry(self, attempt: int, status: int) -> bool:
        return status == 401 and attempt < self.max_attempts


class SpotifyAuthClient:
    """HTTP side of token acquisition: the pool list, token checks and the issuer."""

    def __init__(self, session: aiohttp.ClientSession, client_id: str, client_secret: str,
                 pool_url: str, token_url: str, api_url: str):
        self.session = session
        self.client_id = client_id
        self.client_secret = client_secret
        self.pool_url = pool_url
        self.token_url = token_url
        self.api_url = api_url.rstrip("/")

    async def fetch_pool(self) -> List[str]:
        """Externally published tokens; an empty list when the list is unreachable."""
        try:
            async with self.session.get(self.pool_url) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
            return [t["access_token"] for t in data["tokens"] if t.get("access_token")]
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to fetch token pool: %s", e.__class__.__name__)
            return []

    async def check_token(self, token: str) -> bool:
        try:
            async with self.session.get(
                f"{self.api_url}/me", headers={"Authorization": f"Bearer {token}"}
            ) as resp:
                return 200 <= resp.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def issue(self) -> IssuedToken:
        """Client-credentials exchange against the Spotify accounts service."""
        try:
            async with self.session.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=aiohttp.BasicAuth(self.client_id, self.client_secret),
            ) as resp:
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable("Failed to generate Spotify token") from e

        if not isinstance(data, dict) or not data.get("access_token"):
            raise UpstreamUnavailable("Failed to generate Spotify token")
        return IssuedToken(data["access_token"], int(data.get("expires_in", 3600)))


class SpotifyTokenManager:
    """
    Owns the cached token and the pool. The pool and cursor change only while
    ``_lock`` is held; ``invalidate()`` queues rejected tokens and the next
    scan drops them.
    """

    def __init__(self, auth_client: SpotifyAuthClient, margin: int = 300,
                 clock: Callable[[], float] = time.time):
        self.auth_client = auth_client
        self.margin = margin
        self.clock = clock
        self.pool: List[str] = []
        self.cursor = 0
        self.cached: Optional[CredentialToken] = None
        self._rejected: Set[str] = set()
        self._lock = asyncio.Lock()

    def _cached_token(self) -> Optional[str]:
        cached = self.cached
        if cached is not None and cached.is_valid(self.clock()):
            return cached.token
        return None

    def _prune_pool(self):
        # Lock held
        if not self._rejected:
            return
        rejected, self._rejected = self._rejected, set()
        kept_before = sum(1 for t in self.pool[:self.cursor] if t not in rejected)
        pool = [t for t in self.pool if t not in rejected]
        self.cursor = kept_before % len(pool) if pool else 0
        self.pool = pool

    async def get_valid_token(self) -> str:
        token = self._cached_token()
        if token:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._cached_token()
            if token:
                return token

            self._prune_pool()
            if not self.pool:
                self.pool = await self.auth_client.fetch_pool()
                self.cursor = 0

            for _ in range(len(self.pool)):
                self._prune_pool()
                if not self.pool:
                    break
                candidate = self.pool[self.cursor]
                self.cursor = (self.cursor + 1) % len(self.pool)
                if await self.auth_client.check_token(candidate) and candidate not in self._rejected:
                    return candidate

            self._prune_pool()
            return await self._issue()

    async def _issue(self) -> str:
        issued = await self.auth_client.issue()
        self.cached = CredentialToken(
            token=issued.access_token,
            expires_at=self.clock() + issued.expires_in - self.margin,
        )
        logger.info("Issued new Spotify client-credentials token")
        return issued.access_token

    def invalidate(self, token: str):
        """Forget a token a downstream call rejected."""
        cached = self.cached
        if cached is not None and cached.token == token:
            self.cached = None
        self._rejected.add(token)
