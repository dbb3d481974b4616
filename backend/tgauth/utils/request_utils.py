# /tgauth/utils/request_utils.py
from fastapi import Request

def get_remote_address(request: Request) -> str:
    """
    Client IP for rate limiting and logs. Honors the first X-Forwarded-For hop
    since the service normally runs behind a reverse proxy.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"
