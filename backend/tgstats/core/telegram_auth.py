"""
Telegram Mini App request authentication.

Two generations of the Mini App sign their launch data differently:

* ``AuthScheme.HMAC`` -- the percent-encoded ``initData`` string carries a
  ``hash`` computed with a secret derived from the bot token.
* ``AuthScheme.ED25519`` -- an already-parsed ``query_string`` mapping comes
  with a detached base64url ``signature`` made with Telegram's own key, so only
  the bot id and Telegram's public key are needed to check it.

Each scheme is its own verifier; an endpoint picks one and never falls back
to the other.
"""
import base64
import binascii
import enum
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import parse_qsl, unquote

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from tgstats.core.errors import HashMismatch, MalformedInput, SignatureMismatch, StaleAuth

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class AuthScheme(str, enum.Enum):
    HMAC = "hmac"
    ED25519 = "ed25519"


@dataclass
class TelegramIdentity:
    """Verified launch data: every signed field plus the decoded ``user``."""
    fields: Dict[str, str]
    user: Optional[Dict[str, Any]] = field(default=None)

    @property
    def user_id(self):
        return self.user.get("id") if self.user else None


def build_data_check_string(fields: Mapping[str, Any], prefix: Optional[str] = None) -> str:
    """Sorted ``key=value`` lines joined with ``\\n``, optionally prefixed."""
    body = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    if prefix is None:
        return body
    return f"{prefix}\n{body}"


class FreshnessPolicy:
    """
    Rejects launch data older than ``max_age + clock_skew`` seconds.

    Timestamps further in the future than ``clock_skew`` are rejected too,
    unless ``allow_future`` is set.
    """

    def __init__(self, max_age: int = 3600, clock_skew: int = 300,
                 allow_future: bool = False, clock: Clock = time.time):
        self.max_age = max_age
        self.clock_skew = clock_skew
        self.allow_future = allow_future
        self.clock = clock

    @staticmethod
    def parse_auth_date(raw: Optional[str]) -> int:
        try:
            auth_date = int(raw)
        except (TypeError, ValueError):
            raise MalformedInput("Invalid auth_date")
        if auth_date <= 0:
            raise MalformedInput("Invalid auth_date")
        return auth_date

    def check(self, raw_auth_date: Optional[str]) -> int:
        auth_date = self.parse_auth_date(raw_auth_date)
        age = int(self.clock()) - auth_date
        if age > self.max_age + self.clock_skew:
            raise StaleAuth()
        if not self.allow_future and -age > self.clock_skew:
            raise StaleAuth("Auth date is in the future")
        return auth_date


def _parse_user(raw: Optional[str], required: bool) -> Optional[Dict[str, Any]]:
    if raw is None:
        if required:
            raise MalformedInput("User data or user ID missing in the provided data")
        return None
    try:
        user = json.loads(raw)
    except ValueError:
        raise MalformedInput("User data is not valid JSON")
    if not isinstance(user, dict) or not user.get("id"):
        raise MalformedInput("User data or user ID missing in the provided data")
    return user


class HmacInitDataVerifier:
    """HMAC-SHA256 check of a raw ``initData`` string against the bot token."""

    scheme = AuthScheme.HMAC

    def __init__(self, bot_token: str, freshness: FreshnessPolicy):
        # Only the derived key is kept around
        self._secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
        self.freshness = freshness

    def digest(self, fields: Mapping[str, Any]) -> bytes:
        data_check_string = build_data_check_string(fields)
        return hmac.new(self._secret_key, data_check_string.encode(), hashlib.sha256).digest()

    def sign(self, fields: Mapping[str, Any]) -> str:
        return self.digest(fields).hex()

    def verify(self, init_data: str) -> TelegramIdentity:
        if not init_data:
            raise MalformedInput("Missing initData")

        params = dict(parse_qsl(unquote(init_data), keep_blank_values=True))
        received_hash = params.pop("hash", None)
        if not received_hash:
            raise MalformedInput("Invalid initData format or hash missing")

        try:
            # Case-insensitive; no whitespace
            received_digest = binascii.unhexlify(received_hash)
        except ValueError:
            logger.warning("initData rejected: hash is not hex")
            raise HashMismatch()

        # compare_digest returns False on a length mismatch
        if not hmac.compare_digest(self.digest(params), received_digest):
            logger.warning("initData rejected: hash mismatch")
            raise HashMismatch()

        self.freshness.check(params.get("auth_date"))
        user = _parse_user(params.get("user"), required=True)
        return TelegramIdentity(fields=params, user=user)


def decode_base64url(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.b64decode(value.replace("-", "+").replace("_", "/") + padding, validate=True)


class Ed25519QueryVerifier:
    """Ed25519 check of a parsed ``query_string`` against Telegram's public key."""

    scheme = AuthScheme.ED25519
    excluded_keys = frozenset({"hash", "signature"})

    def __init__(self, bot_id: str, public_key_hex: str, freshness: FreshnessPolicy):
        self.bot_id = str(bot_id)
        self._verify_key = VerifyKey(bytes.fromhex(public_key_hex))
        self.freshness = freshness

    def data_check_string(self, query_string: Mapping[str, Any]) -> str:
        fields = {k: v for k, v in query_string.items() if k not in self.excluded_keys}
        return build_data_check_string(fields, prefix=f"{self.bot_id}:WebAppData")

    def verify(self, query_string: Mapping[str, Any], signature: str) -> TelegramIdentity:
        if not query_string or not signature:
            raise MalformedInput("Missing required fields")

        message = self.data_check_string(query_string).encode("utf-8")
        try:
            self._verify_key.verify(message, decode_base64url(signature))
        except (BadSignatureError, binascii.Error, ValueError):
            logger.warning("query_string rejected: bad signature")
            raise SignatureMismatch()

        self.freshness.check(query_string.get("auth_date"))
        fields = {
            k: str(v) for k, v in query_string.items() if k not in self.excluded_keys
        }
        return TelegramIdentity(fields=fields, user=_parse_user(fields.get("user"), required=False))


def build_verifier(scheme: AuthScheme, settings, clock: Clock = time.time):
    freshness = FreshnessPolicy(
        max_age=settings.auth_max_age,
        clock_skew=settings.auth_clock_skew,
        allow_future=settings.auth_allow_future_dates,
        clock=clock,
    )
    if scheme is AuthScheme.HMAC:
        return HmacInitDataVerifier(settings.bot_token, freshness)
    if scheme is AuthScheme.ED25519:
        return Ed25519QueryVerifier(settings.bot_id, settings.telegram_public_key, freshness)
    raise ValueError(f"Unknown auth scheme: {scheme}")
