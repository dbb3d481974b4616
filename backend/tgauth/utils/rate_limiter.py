# /tgauth/utils/rate_limiter.py

from fastapi import Request
from slowapi import Limiter
from tgauth.utils.request_utils import get_remote_address
from tgauth.config.settings import settings

# Kept apart from main.py so route modules can import the limiter without a
# cycle. Counters live in Redis when it is configured so that every worker
# enforces the same limits.


def project_or_remote_address(request: Request) -> str:
    """
    Project backends call from a handful of server IPs, so verification
    endpoints are limited per project key. Only a key prefix is stored.
    """
    project_key = request.headers.get("x-project-key")
    if project_key:
        return f"project:{project_key[:12]}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url or "memory://",
    swallow_errors=True,
)
