from fastapi import Request

from tgstats.core.telegram_auth import Ed25519QueryVerifier, HmacInitDataVerifier
from tgstats.services.downloader import DownloadResolver
from tgstats.services.lastfm import LastFMService
from tgstats.services.profiles import ProfileStore
from tgstats.services.spotify import SpotifyService
from tgstats.services.spotify_tokens import SpotifyTokenManager

# Everything here is built once in the lifespan and stored on app.state


def get_hmac_verifier(request: Request) -> HmacInitDataVerifier:
    return request.app.state.hmac_verifier


def get_ed25519_verifier(request: Request) -> Ed25519QueryVerifier:
    return request.app.state.ed25519_verifier


def get_token_manager(request: Request) -> SpotifyTokenManager:
    return request.app.state.token_manager


def get_spotify_service(request: Request) -> SpotifyService:
    return request.app.state.spotify_service


def get_lastfm_service(request: Request) -> LastFMService:
    return request.app.state.lastfm_service


def get_download_resolver(request: Request) -> DownloadResolver:
    return request.app.state.download_resolver


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store
