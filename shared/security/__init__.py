from .jwt_handler import create_access_token, verify_access_token
from .dependencies import get_current_user, get_websocket_user
from .rate_limiter import limiter, socket_hit_allowed, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "get_current_user",
    "get_websocket_user",
    "limiter",
    "socket_hit_allowed",
    "user_id_or_ip",
]
