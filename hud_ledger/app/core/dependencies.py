"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting ledger routes with JWT authentication.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from hud_ledger.app.core.jwt import decode_access_token
from hud_ledger.app.core.exceptions import AuthenticationError

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. A bearer token is present
    2. Token signature and expiry are valid
    3. Payload carries a `user_id` principal

    Returns:
        Decoded token payload; `user_id` is normalized to a string

    Raises:
        AuthenticationError: 401 if authentication fails for any reason
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    payload["user_id"] = str(user_id)
    return payload
