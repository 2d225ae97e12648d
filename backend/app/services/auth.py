from fastapi import Depends, HTTPException, Query, WebSocketException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.database import get_anon_client
from app.models.schemas import CurrentUser

security = HTTPBearer()


def resolve_user(token: str) -> CurrentUser:
    """
    Verify a Supabase Auth access token and return the caller's identity.

    The ledger treats the id and display name as opaque strings. Display
    name comes from the auth user's metadata, falling back to the email's
    local part.
    """
    supabase = get_anon_client()
    user_response = supabase.auth.get_user(token)

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token"
        )

    auth_user = user_response.user
    metadata = getattr(auth_user, "user_metadata", None) or {}
    email = getattr(auth_user, "email", None)
    display_name = metadata.get("display_name") or (email.split("@")[0] if email else str(auth_user.id))

    return CurrentUser(id=str(auth_user.id), display_name=display_name, email=email)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """Verify the bearer token and return the current user."""
    try:
        return resolve_user(credentials.credentials)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication failed: {str(e)}"
        )


async def get_websocket_user(token: str = Query(...)) -> CurrentUser:
    """
    Same as get_current_user, for WebSocket handshakes.

    Browsers can't set headers on WebSocket connections, so the token
    arrives as a `token` query parameter.
    """
    try:
        return resolve_user(token)
    except Exception:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication failed")
