import base64
import hashlib
import hmac
import os
from urllib.parse import urlencode

import aiohttp
import pytest
from nacl.signing import SigningKey

# Settings are read at import time
os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("BOT_ID", "123456")

from tgstats.core.telegram_auth import (  # noqa: E402
    Ed25519QueryVerifier,
    FreshnessPolicy,
    HmacInitDataVerifier,
)

BOT_TOKEN = "123456:TEST-TOKEN"
BOT_ID = "123456"
NOW = 1700000100


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(None, (), status=self.status)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession: replays queued responses, records calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)


def hmac_hash(fields, bot_token=BOT_TOKEN):
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    check = "\n".join(f"{k}={fields[k]}" for k in sorted(fields))
    return hmac.new(secret, check.encode(), hashlib.sha256).hexdigest()


def make_init_data(fields, bot_token=BOT_TOKEN, hash_value=None):
    signed = dict(fields)
    signed["hash"] = hash_value if hash_value is not None else hmac_hash(fields, bot_token)
    return urlencode(signed)


def ed25519_signature(signing_key, fields, bot_id=BOT_ID):
    check = "\n".join(f"{k}={fields[k]}" for k in sorted(fields))
    message = f"{bot_id}:WebAppData\n{check}".encode("utf-8")
    raw = signing_key.sign(message).signature
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def freshness(clock):
    return FreshnessPolicy(max_age=3600, clock_skew=300, clock=clock)


@pytest.fixture
def hmac_verifier(freshness):
    return HmacInitDataVerifier(BOT_TOKEN, freshness)


@pytest.fixture
def signing_key():
    return SigningKey.generate()


@pytest.fixture
def ed25519_verifier(signing_key, freshness):
    public_key_hex = signing_key.verify_key.encode().hex()
    return Ed25519QueryVerifier(BOT_ID, public_key_hex, freshness)
