# /tgauth/services/db_service.py

import logging
from motor.motor_asyncio import AsyncIOMotorClient
from bson import ObjectId
from datetime import datetime, timezone
from typing import Optional

from tgauth.config.settings import settings
from tgauth.models.domain import Collections

logger = logging.getLogger(__name__)

# (collection, keys, options). The expires_at TTL indexes are the passive
# expiry path; readers still check expires_at themselves.
INDEXES = [
    (Collections.PROJECTS, [("key", 1)], {"unique": True}),
    (Collections.PROJECTS, [("code", 1)], {"unique": True}),
    (Collections.PROJECTS, [("created_at", -1)], {}),
    (Collections.START_SESSIONS, [("chat_id", 1), ("created_at", -1)], {}),
    (Collections.START_SESSIONS, [("expires_at", 1)], {"expireAfterSeconds": 0}),
    (Collections.LINKED_IDENTITIES, [("project_id", 1), ("phone", 1)], {"unique": True}),
    (Collections.LINKED_IDENTITIES, [("project_id", 1), ("telegram_id", 1)], {"unique": True}),
    (Collections.VERIFICATION_CODES, [("project_id", 1), ("phone", 1), ("created_at", -1)], {}),
    (Collections.VERIFICATION_CODES, [("expires_at", 1)], {"expireAfterSeconds": 0}),
    (Collections.ADMIN_ACTIONS, [("chat_id", 1), ("type", 1), ("created_at", -1)], {}),
    (Collections.ADMIN_ACTIONS, [("expires_at", 1)], {"expireAfterSeconds": 0}),
]


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value) -> Optional[ObjectId]:
    """Parses an ObjectId from user input, None when malformed."""
    if isinstance(value, ObjectId):
        return value
    if not value or not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class DatabaseService:
    """
    Owns the MongoDB client and the collection indexes. Domain services reach
    their collections through `db_service.db` at call time.
    """

    def __init__(self, mongo_uri: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000
            )
            self.db = self.client.get_default_database()
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    # ==================== Index Management ====================

    async def create_indexes(self) -> None:
        """Create all indexes on startup."""
        for collection, keys, options in INDEXES:
            try:
                await self.db[collection].create_index(keys, **options)
                logger.debug(f"Created index on {collection}: {keys}")
            except Exception as e:
                logger.error(f"Failed to create index on {collection} {keys}: {e}")

        logger.info("Database indexes created successfully.")

    async def health_check(self) -> bool:
        try:
            await self.client.admin.command('ping')
            return True
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return False

    def close(self):
        if self.client:
            self.client.close()


# Globally accessible instance
db_service = DatabaseService(settings.mongodb_uri)
