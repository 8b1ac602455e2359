import logging

from fastapi import APIRouter, Depends, HTTPException

from tgstats.core.telegram_auth import HmacInitDataVerifier
from tgstats.models.schemas import (
    ErrorResponse,
    InitDataRequest,
    ValidLastFMResponse,
    ValidSpotifyResponse,
)
from tgstats.routers.deps import get_hmac_verifier, get_profile_store, get_token_manager
from tgstats.services.profiles import ProfileStore
from tgstats.services.spotify_tokens import SpotifyTokenManager

logger = logging.getLogger(__name__)

VALID_MESSAGE = "Data is valid and originated from Telegram."

router = APIRouter(
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
)


@router.post(
    "/validlastfm",
    response_model=ValidLastFMResponse,
    responses={404: {"model": ErrorResponse}},
)
async def valid_lastfm(
    request: InitDataRequest,
    verifier: HmacInitDataVerifier = Depends(get_hmac_verifier),
    profiles: ProfileStore = Depends(get_profile_store),
):
    """
    **Validate initData and load the saved Last.fm username**

    Returns 404 with type `user_or_lastfm_username_not_found` when the
    Telegram user has not linked a Last.fm account yet.
    """
    if not request.initData:
        raise HTTPException(status_code=400, detail="Missing initData")

    identity = verifier.verify(request.initData)
    logger.info("Verified Telegram user %s", identity.user_id)

    profile = await profiles.get_lastfm_profile(identity.user_id)
    return {"message": VALID_MESSAGE, "user": profile, "allData": identity.fields}


@router.post("/validspotify", response_model=ValidSpotifyResponse)
async def valid_spotify(
    request: InitDataRequest,
    verifier: HmacInitDataVerifier = Depends(get_hmac_verifier),
    token_manager: SpotifyTokenManager = Depends(get_token_manager),
):
    """
    **Validate initData and hand out a Spotify access token**
    """
    if not request.initData:
        raise HTTPException(status_code=400, detail="Missing initData")

    identity = verifier.verify(request.initData)
    spotify_token = await token_manager.get_valid_token()
    return {"message": VALID_MESSAGE, "allData": identity.fields, "spotifyToken": spotify_token}
