from typing import Optional

import aiohttp

from tgstats.core.config import settings

_http_session: Optional[aiohttp.ClientSession] = None


def create_session(timeout: float = None, user_agent: str = None) -> aiohttp.ClientSession:
    """One pooled session for every outbound call, each bounded by ``timeout``."""
    timeout = aiohttp.ClientTimeout(total=timeout or settings.http_timeout)
    connector = aiohttp.TCPConnector(
        limit=100,
        limit_per_host=30,
        ttl_dns_cache=300,
        enable_cleanup_closed=True,
    )
    headers = {"User-Agent": user_agent or settings.user_agent}
    return aiohttp.ClientSession(timeout=timeout, connector=connector, headers=headers)


async def get_session() -> aiohttp.ClientSession:
    global _http_session
    if _http_session is None or _http_session.closed:
        _http_session = create_session()
    return _http_session


async def close_session():
    global _http_session
    if _http_session and not _http_session.closed:
        await _http_session.close()
    _http_session = None
