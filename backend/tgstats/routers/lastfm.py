from fastapi import APIRouter, Depends, HTTPException

from tgstats.core.telegram_auth import Ed25519QueryVerifier
from tgstats.models.schemas import ErrorResponse, LastFMRequest
from tgstats.routers.deps import get_ed25519_verifier, get_lastfm_service
from tgstats.services.lastfm import ALLOWED_PERIODS, TOP_TYPES, LastFMService

router = APIRouter(
    tags=["Last.fm"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


@router.post("/lastfm")
async def lastfm_stats(
    request: LastFMRequest,
    verifier: Ed25519QueryVerifier = Depends(get_ed25519_verifier),
    lastfm: LastFMService = Depends(get_lastfm_service),
):
    """
    **Last.fm listening statistics**

    Without `type` and `period` returns the user profile with the current and
    recent tracks. Otherwise `type` selects `topTracks`, `topArtists` or
    `topAlbums` over `period`.
    """
    if not request.query_string or not request.signature:
        raise HTTPException(status_code=400, detail="Missing required fields")

    verifier.verify(request.query_string, request.signature)

    if not request.username:
        raise HTTPException(status_code=400, detail="Username is required")

    if not request.type and not request.period:
        return await lastfm.get_overview(request.username)

    if request.type not in TOP_TYPES:
        raise HTTPException(
            status_code=400,
            detail='Type must be one of "topTracks", "topArtists", or "topAlbums"',
        )
    if request.period not in ALLOWED_PERIODS:
        raise HTTPException(
            status_code=400,
            detail=f"Period must be one of {', '.join(ALLOWED_PERIODS)}",
        )

    return await lastfm.get_top(request.username, request.type, request.period)
