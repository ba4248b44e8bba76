import os
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from .dependencies import user_id_from_token

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Extracts the user ID directly from the Authorization header if available.
    Falls back to the client's IP address if unauthenticated.
    """
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        user_id = user_id_from_token(auth_header.split(" ", 1)[1])
        if user_id:
            return f"user:{user_id}"

    # Fallback to IP address (handles proxies if X-Forwarded-For is set correctly by Uvicorn)
    return f"ip:{get_remote_address(request)}"

limiter = Limiter(key_func=user_id_or_ip, enabled=RATE_LIMIT_ENABLED)

# slowapi decorates HTTP routes only; frames on an open socket are counted here
socket_limiter = FixedWindowRateLimiter(MemoryStorage())

def socket_hit_allowed(limit: str, scope: str, user_id: str) -> bool:
    """Count one hit for ``user_id`` against ``limit`` (e.g. "30/minute")."""
    if not RATE_LIMIT_ENABLED:
        return True
    return socket_limiter.hit(parse(limit), scope, f"user:{user_id}")
