from fastapi import Depends, HTTPException, Query, WebSocket, WebSocketException, status, Request
from fastapi.security import OAuth2PasswordBearer
from .jwt_handler import verify_access_token

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

def user_id_from_token(token: str | None) -> str | None:
    if not token:
        return None
    payload = verify_access_token(token)
    if payload is None:
        return None
    return payload.get("sub")

async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> str:
    """Dependency to validate JWT and return the user ID (sub)."""
    user_id = user_id_from_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = user_id
    return user_id

async def get_websocket_user(websocket: WebSocket, token: str | None = Query(default=None)) -> str:
    """Browsers cannot set headers on a WebSocket handshake, so the token rides in the query string."""
    user_id = user_id_from_token(token)
    if user_id is None:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Could not validate credentials")
    return user_id
