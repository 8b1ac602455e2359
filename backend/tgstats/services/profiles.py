import logging

from pymongo.errors import PyMongoError

from tgstats.core.errors import AppError, NotFound

logger = logging.getLogger(__name__)

LASTFM_COLLECTION = "LASTFM"


class ProfileStore:
    """Saved Last.fm usernames keyed by Telegram user id."""

    def __init__(self, database):
        self.database = database

    async def get_lastfm_profile(self, user_id) -> dict:
        try:
            doc = await self.database[LASTFM_COLLECTION].find_one(
                {"user_id": user_id}, {"_id": 0}
            )
        except PyMongoError:
            logger.exception("MongoDB query error for user %s", user_id)
            raise AppError("Database query failed", "database_error")

        if not doc or not doc.get("lastfm_username"):
            raise NotFound(
                "User not found or Last.fm username not set",
                "user_or_lastfm_username_not_found",
            )
        return doc
