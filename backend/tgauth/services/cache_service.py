# /tgauth/services/cache_service.py

import logging
from typing import Optional
import redis.asyncio as redis

from tgauth.config.settings import settings

# Redis is optional: it backs the issuance throttle, the Telegram circuit
# breaker and webhook de-duplication. With no REDIS_URL those features open.

logger = logging.getLogger(__name__)

class CacheService:
    def __init__(self, redis_url: Optional[str]):
        self.redis = None
        if not redis_url:
            logger.info("REDIS_URL not set; Redis-backed features are disabled.")
            return
        try:
            self.redis_pool = redis.ConnectionPool.from_url(redis_url, max_connections=20)
            self.redis = redis.Redis(connection_pool=self.redis_pool)
        except Exception as e:
            logger.critical(f"Failed to connect to Redis at {redis_url}: {e}")
            self.redis = None

    async def claim_once(self, key: str, ttl: int = 300) -> bool:
        """
        Sets key only if absent. Returns True for the first caller, False for
        repeats within ttl. Without Redis every caller is first.
        """
        if not self.redis:
            return True
        try:
            return bool(await self.redis.set(key, "1", ex=ttl, nx=True))
        except Exception as e:
            logger.warning(f"Cache claim failed for key {key}: {e}")
            return True

    async def close(self):
        if self.redis:
            await self.redis.aclose()

# Globally accessible instance
cache_service = CacheService(settings.redis_url)
