# /tgauth/services/security_service.py

import hmac
import logging
import hashlib
import re
import secrets
from typing import Optional, Protocol
from redis.exceptions import RedisError

from tgauth.config.settings import settings
from tgauth.services.cache_service import cache_service

logger = logging.getLogger(__name__)

# Secrets, digests and throttles: phone normalization, code and key
# generation, the pluggable code hasher and the Redis-backed rate limiter.

OTP_MIN = 100000
OTP_MAX = 999999
API_KEY_BYTES = 24
INVITE_CODE_BYTES = 4


class SecurityService:
    @staticmethod
    def normalize_phone(phone) -> str:
        """
        Reduces a phone number to '+' followed by its digits.
        Returns an empty string when no digit is present.

        A '+' is added even when the input has none, rather than only
        keeping one that is already there: Telegram contacts arrive without
        it, and they must match the '+998...' form API callers send.
        """
        if phone is None:
            return ""
        digits = re.sub(r"\D", "", str(phone))
        if not digits:
            return ""
        return "+" + digits

    @staticmethod
    def generate_otp() -> str:
        """Uniform six-digit code in [100000, 999999]."""
        return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))

    @staticmethod
    def generate_api_key() -> str:
        return secrets.token_hex(API_KEY_BYTES)

    @staticmethod
    def generate_invite_code() -> str:
        return secrets.token_hex(INVITE_CODE_BYTES)

    @staticmethod
    def keys_match(provided: Optional[str], expected: Optional[str]) -> bool:
        if not provided or not expected:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


# --- Code hashing ---

class CodeHasher(Protocol):
    def hash(self, code: str) -> str: ...

    def matches(self, code: str, digest: str) -> bool: ...


class Sha256CodeHasher:
    """Unsalted SHA-256. Codes are short-lived and attempt-limited."""

    def hash(self, code: str) -> str:
        return hashlib.sha256(str(code).encode("utf-8")).hexdigest()

    def matches(self, code: str, digest: str) -> bool:
        return hmac.compare_digest(self.hash(code), digest or "")


class HmacCodeHasher(Sha256CodeHasher):
    """Keyed variant, so a leaked collection cannot be brute-forced offline."""

    def __init__(self, secret: str):
        self.secret = secret.encode("utf-8")

    def hash(self, code: str) -> str:
        return hmac.new(self.secret, str(code).encode("utf-8"), hashlib.sha256).hexdigest()


def build_code_hasher(secret: Optional[str]) -> CodeHasher:
    if secret:
        return HmacCodeHasher(secret)
    return Sha256CodeHasher()


# --- Rate Limiting ---

class AdvancedRateLimiter:
    def __init__(self, redis_client):
        self.redis = redis_client

    async def check_phone_rate_limit(self, scope: str, phone_number: str, limit: int = 5, window: int = 60) -> bool:
        if not self.redis:
            return True
        key = f"rate_limit:phone:{scope}:{phone_number}"
        try:
            current_count = await self.redis.incr(key)
            if current_count == 1:
                await self.redis.expire(key, window)
        except RedisError as e:
            # Fail open, like the other Redis-backed throttles.
            logger.warning(f"Phone rate limit check failed for {scope}: {e}")
            return True
        return current_count <= limit

# Globally accessible instances
code_hasher = build_code_hasher(settings.otp_hash_secret)
rate_limiter = AdvancedRateLimiter(cache_service.redis)
