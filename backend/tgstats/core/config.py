from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

# Telegram's production Ed25519 key for third-party initData validation
TELEGRAM_PUBLIC_KEY = "e7bf03a2fa4602af4580703d88dda5bb59f32ed8b02a56c187fe7d34caed242d"


class Settings(BaseSettings):
    # Telegram Bot
    bot_token: str
    bot_id: str = Field(..., min_length=1)
    telegram_public_key: str = TELEGRAM_PUBLIC_KEY

    # initData freshness
    auth_max_age: int = 60 * 60
    auth_clock_skew: int = 5 * 60
    auth_allow_future_dates: bool = False

    # Last.fm
    lastfm_api_key: str = ""
    lastfm_api_url: str = "https://ws.audioscrobbler.com/2.0/"

    # Spotify
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    spotify_token_url: str = "https://accounts.spotify.com/api/token"
    spotify_api_url: str = "https://api.spotify.com/v1"
    spotify_token_pool_url: str = "https://raw.githubusercontent.com/itzzzme/spotify-key/refs/heads/main/token.json"
    spotify_token_margin: int = 5 * 60

    # Download resolver
    download_api_base: str = "https://universaldownloaderapi.vercel.app/api/spotify/download"
    download_cache_ttl: int = 5 * 60

    # Outbound HTTP
    http_timeout: float = 5.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/118.0.5993.90 Safari/537.36"
    )

    # MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "tgstats"

    # Application
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False

    # SSL
    ssl_keyfile: Optional[str] = None
    ssl_certfile: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
