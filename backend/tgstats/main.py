import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tgstats.core import database
from tgstats.core.config import settings
from tgstats.core.errors import AppError, app_error_handler
from tgstats.core.http import close_session, get_session
from tgstats.core.telegram_auth import AuthScheme, build_verifier
from tgstats.routers import auth, download, lastfm, spotify
from tgstats.services.downloader import DownloadResolver
from tgstats.services.lastfm import LastFMService
from tgstats.services.profiles import ProfileStore
from tgstats.services.spotify import SpotifyService
from tgstats.services.spotify_tokens import SpotifyAuthClient, SpotifyTokenManager

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: MongoDB, one HTTP session and the services built on it
    await database.connect_to_mongo()
    session = await get_session()

    app.state.hmac_verifier = build_verifier(AuthScheme.HMAC, settings)
    app.state.ed25519_verifier = build_verifier(AuthScheme.ED25519, settings)

    auth_client = SpotifyAuthClient(
        session,
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        pool_url=settings.spotify_token_pool_url,
        token_url=settings.spotify_token_url,
        api_url=settings.spotify_api_url,
    )
    app.state.token_manager = SpotifyTokenManager(auth_client, margin=settings.spotify_token_margin)
    app.state.spotify_service = SpotifyService(session, app.state.token_manager, settings.spotify_api_url)
    app.state.lastfm_service = LastFMService(session, settings.lastfm_api_key, settings.lastfm_api_url)
    app.state.download_resolver = DownloadResolver(
        session, settings.download_api_base, ttl=settings.download_cache_ttl
    )
    app.state.profile_store = ProfileStore(database.db.stats_db)
    logger.info("tgstats API started")
    yield
    # Shutdown
    await close_session()
    await database.close_mongo_connection()


tags_metadata = [
    {
        "name": "Authentication",
        "description": "Telegram Mini App initData validation (HMAC-SHA256).",
    },
    {
        "name": "Last.fm",
        "description": "Last.fm statistics for requests signed by Telegram (Ed25519).",
    },
    {
        "name": "Spotify",
        "description": "Spotify statistics for requests signed by Telegram (Ed25519).",
    },
    {
        "name": "Download",
        "description": "Download links for Spotify tracks.",
    },
]

app = FastAPI(
    title="Telegram Listening Stats API",
    description="""
## Telegram Mini App backend for Last.fm and Spotify statistics

* **initData validation** via HMAC-SHA256 with the bot token
* **Signed requests** via Telegram's Ed25519 third-party signature
* **Spotify tokens** from a rotating pool with client-credentials fallback
    """,
    version="1.0.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_exception_handler(AppError, app_error_handler)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "type": "server_error"})


app.include_router(auth.router, prefix="/api")
app.include_router(lastfm.router, prefix="/api")
app.include_router(spotify.router, prefix="/api")
app.include_router(download.router, prefix="/api")

# Telegram Mini App is served from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["System"])
async def root():
    """
    Root endpoint - API health check
    """
    return {
        "status": "online",
        "message": "Telegram Listening Stats API is running",
        "docs": "/docs",
        "version": "1.0.0",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tgstats.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        ssl_keyfile=settings.ssl_keyfile,
        ssl_certfile=settings.ssl_certfile,
    )
