from fastapi import APIRouter, Depends, HTTPException

from tgstats.core.telegram_auth import Ed25519QueryVerifier
from tgstats.models.schemas import ErrorResponse, SpotifyRequest
from tgstats.routers.deps import get_ed25519_verifier, get_spotify_service
from tgstats.services.spotify import ALLOWED_PERIODS, DEFAULT_PERIOD, TIME_RANGES, SpotifyService

TYPES = ["topTracks", "topArtists", "playlists", "albums"]

router = APIRouter(
    tags=["Spotify"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
)


@router.post("/spotify")
async def spotify_stats(
    request: SpotifyRequest,
    verifier: Ed25519QueryVerifier = Depends(get_ed25519_verifier),
    spotify: SpotifyService = Depends(get_spotify_service),
):
    """
    **Spotify listening statistics**

    The caller's `access_token` is used when given, otherwise a token from the
    shared pool. Selects, in order: `playlistId`, `albumId`, `type`; with
    none of them returns profile, current and recent tracks.
    """
    if not request.query_string or not request.signature:
        raise HTTPException(status_code=400, detail="Missing required fields")

    verifier.verify(request.query_string, request.signature)

    token = request.access_token or await spotify.token_manager.get_valid_token()

    if not request.type and not request.playlistId and not request.albumId:
        return await spotify.get_overview(token)

    if request.playlistId:
        return {"playlist": await spotify.get_playlist_details(request.playlistId, token)}

    if request.albumId:
        return {"album": await spotify.get_album_details(request.albumId, token)}

    if request.type not in TYPES:
        raise HTTPException(
            status_code=400,
            detail='Type must be one of "topTracks", "topArtists", "playlists", or "albums"',
        )

    if request.type == "playlists":
        return {"playlists": await spotify.get_user_playlists(token)}
    if request.type == "albums":
        return {"albums": await spotify.get_saved_albums(token)}

    if request.period and request.period not in ALLOWED_PERIODS:
        raise HTTPException(
            status_code=400,
            detail=f"Period must be one of {', '.join(ALLOWED_PERIODS)}",
        )
    time_range = TIME_RANGES[request.period or DEFAULT_PERIOD]

    if request.type == "topTracks":
        return {"topTracks": await spotify.get_top_tracks(token, time_range)}
    return {"topArtists": await spotify.get_top_artists(token, time_range)}
