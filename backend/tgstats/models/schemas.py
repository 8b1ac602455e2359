from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, Optional

# --- AUTH ---
class InitDataRequest(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "initData": "query_id=AAHdF6IQAAAAAN0XohDhrOrc&user=%7B%22id%22%3A279058397%2C%22first_name%22%3A%22Vlad%22%7D&auth_date=1662771648&hash=c501b71e775f74ce10e377dea85a7ea24ecd640b223ea86dfe453e0eaed2e2b2"
            }
        }
    )

    initData: Optional[str] = Field(None, description="Query string from window.Telegram.WebApp.initData")

class LastFMProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_id: int
    lastfm_username: str

class ValidLastFMResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Data is valid and originated from Telegram.",
                "user": {"user_id": 279058397, "lastfm_username": "rj"},
                "allData": {"auth_date": "1662771648", "user": "{\"id\":279058397}"}
            }
        }
    )

    message: str
    user: LastFMProfile
    allData: Dict[str, str]

class ValidSpotifyResponse(BaseModel):
    message: str
    allData: Dict[str, str]
    spotifyToken: str

# --- SIGNED REQUESTS ---
class SignedRequest(BaseModel):
    query_string: Optional[Dict[str, Any]] = Field(None, description="Parsed initData fields")
    signature: Optional[str] = Field(None, description="Ed25519 signature, base64url without padding")
    period: Optional[str] = None
    type: Optional[str] = None

class LastFMRequest(SignedRequest):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "query_string": {"auth_date": "1700000000", "user": "{\"id\":42}"},
                "signature": "b3J5R4v...",
                "username": "rj",
                "type": "topTracks",
                "period": "7day"
            }
        }
    )

    username: Optional[str] = None

class SpotifyRequest(SignedRequest):
    access_token: Optional[str] = None
    playlistId: Optional[str] = None
    albumId: Optional[str] = None

class ErrorResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Auth date is too old",
                "type": "stale_auth"
            }
        }
    )

    error: str
    type: Optional[str] = None
