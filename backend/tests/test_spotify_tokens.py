"""Tests for Spotify token rotation."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeResponse, FakeSession
from tgstats.core.errors import UpstreamUnavailable
from tgstats.services.spotify_tokens import (
    CredentialToken,
    IssuedToken,
    RetryPolicy,
    SpotifyAuthClient,
    SpotifyTokenManager,
)


def make_auth_client(pool=None, checks=None, issued=None, issue_error=None):
    client = MagicMock()
    client.fetch_pool = AsyncMock(return_value=list(pool or []))
    client.check_token = AsyncMock(side_effect=checks or (lambda token: False))
    if issue_error is not None:
        client.issue = AsyncMock(side_effect=issue_error)
    else:
        client.issue = AsyncMock(return_value=issued or IssuedToken("fresh", 3600))
    return client


@pytest.mark.asyncio
async def test_cached_token_is_returned_without_network(clock) -> None:
    client = make_auth_client()
    manager = SpotifyTokenManager(client, clock=clock)
    manager.cached = CredentialToken("cached", clock.now + 10)

    assert await manager.get_valid_token() == "cached"
    client.fetch_pool.assert_not_awaited()
    client.check_token.assert_not_awaited()


@pytest.mark.asyncio
async def test_first_working_pool_token_advances_cursor(clock) -> None:
    client = make_auth_client(pool=["a", "b", "c"], checks=[False, True])
    manager = SpotifyTokenManager(client, clock=clock)

    assert await manager.get_valid_token() == "b"
    assert manager.cursor == 2
    assert [c.args[0] for c in client.check_token.await_args_list] == ["a", "b"]
    client.issue.assert_not_awaited()


@pytest.mark.asyncio
async def test_pool_scan_resumes_at_cursor(clock) -> None:
    client = make_auth_client(pool=["a", "b", "c"], checks=[False, True, True])
    manager = SpotifyTokenManager(client, clock=clock)

    await manager.get_valid_token()
    assert await manager.get_valid_token() == "c"
    assert manager.cursor == 0
    client.fetch_pool.assert_awaited_once()


@pytest.mark.asyncio
async def test_falls_back_to_client_credentials(clock) -> None:
    client = make_auth_client(pool=["a", "b"], issued=IssuedToken("fresh", 3600))
    manager = SpotifyTokenManager(client, margin=300, clock=clock)

    assert await manager.get_valid_token() == "fresh"
    assert client.check_token.await_count == 2
    assert manager.cursor == 0
    assert manager.cached == CredentialToken("fresh", clock.now + 3600 - 300)


@pytest.mark.asyncio
async def test_issued_token_expires_with_margin(clock) -> None:
    client = make_auth_client(issued=IssuedToken("fresh", 3600))
    manager = SpotifyTokenManager(client, margin=300, clock=clock)
    await manager.get_valid_token()

    clock.now += 3299
    assert await manager.get_valid_token() == "fresh"
    client.issue.assert_awaited_once()

    clock.now += 1
    await manager.get_valid_token()
    assert client.issue.await_count == 2


@pytest.mark.asyncio
async def test_empty_pool_and_unreachable_issuer_fails(clock) -> None:
    client = make_auth_client(issue_error=UpstreamUnavailable("Failed to generate Spotify token"))
    manager = SpotifyTokenManager(client, clock=clock)

    with pytest.raises(UpstreamUnavailable):
        await manager.get_valid_token()
    assert manager.cached is None
    client.fetch_pool.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_exchange(clock) -> None:
    client = make_auth_client()
    manager = SpotifyTokenManager(client, clock=clock)

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(5)))

    assert tokens == ["fresh"] * 5
    client.issue.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalidate_drops_cached_and_pooled_tokens(clock) -> None:
    manager = SpotifyTokenManager(make_auth_client(checks=lambda token: True), clock=clock)
    manager.cached = CredentialToken("fresh", clock.now + 100)
    manager.pool = ["a", "b", "c"]
    manager.cursor = 2

    manager.invalidate("fresh")
    manager.invalidate("a")

    assert manager.cached is None
    assert await manager.get_valid_token() == "c"
    assert manager.pool == ["b", "c"]
    assert manager.cursor == 0


@pytest.mark.asyncio
async def test_pool_emptied_during_scan_falls_back_to_issuance(clock) -> None:
    manager = None

    async def check(token):
        manager.invalidate("a")
        manager.invalidate("b")
        return False

    client = make_auth_client(pool=["a", "b"], checks=check)
    manager = SpotifyTokenManager(client, clock=clock)

    assert await manager.get_valid_token() == "fresh"
    assert client.check_token.await_count == 1
    assert manager.pool == []
    client.issue.assert_awaited_once()


@pytest.mark.asyncio
async def test_token_rejected_while_check_pending_is_not_returned(clock) -> None:
    check_started = asyncio.Event()
    release_check = asyncio.Event()

    async def check(token):
        check_started.set()
        await release_check.wait()
        return True

    client = make_auth_client(pool=["a"], checks=check)
    manager = SpotifyTokenManager(client, clock=clock)

    scan = asyncio.create_task(manager.get_valid_token())
    await check_started.wait()
    manager.invalidate("a")
    release_check.set()

    assert await scan == "fresh"
    assert manager.pool == []


def test_retry_policy_allows_one_retry_on_401() -> None:
    policy = RetryPolicy()
    assert list(policy.attempts()) == [1, 2]
    assert policy.should_retry(1, 401)
    assert not policy.should_retry(2, 401)
    assert not policy.should_retry(1, 500)


# --- HTTP edge ---

def make_client(session):
    return SpotifyAuthClient(
        session,
        client_id="id",
        client_secret="secret",
        pool_url="https://example.test/token.json",
        token_url="https://accounts.example.test/api/token",
        api_url="https://api.example.test/v1",
    )


@pytest.mark.asyncio
async def test_fetch_pool_reads_access_tokens() -> None:
    session = FakeSession(FakeResponse(payload={"tokens": [{"access_token": "a"}, {"access_token": "b"}]}))
    assert await make_client(session).fetch_pool() == ["a", "b"]


@pytest.mark.asyncio
async def test_fetch_pool_failure_is_empty() -> None:
    session = FakeSession(FakeResponse(status=404, payload={}))
    assert await make_client(session).fetch_pool() == []


@pytest.mark.asyncio
async def test_check_token_hits_me_endpoint() -> None:
    session = FakeSession(FakeResponse(status=200), FakeResponse(status=401))
    client = make_client(session)

    assert await client.check_token("good") is True
    assert await client.check_token("bad") is False
    method, url, kwargs = session.calls[0]
    assert url == "https://api.example.test/v1/me"
    assert kwargs["headers"] == {"Authorization": "Bearer good"}


@pytest.mark.asyncio
async def test_issue_returns_token_and_ttl() -> None:
    session = FakeSession(FakeResponse(payload={"access_token": "fresh", "expires_in": 3600}))
    issued = await make_client(session).issue()

    assert issued == IssuedToken("fresh", 3600)
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["data"] == {"grant_type": "client_credentials"}


@pytest.mark.asyncio
async def test_issue_without_access_token_fails() -> None:
    session = FakeSession(FakeResponse(status=400, payload={"error": "invalid_client"}))
    with pytest.raises(UpstreamUnavailable):
        await make_client(session).issue()
