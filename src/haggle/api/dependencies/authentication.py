# haggle/api/dependencies/authentication.py

import logging
from fastapi import HTTPException, status, Request
from typing import Optional
from pydantic import BaseModel
from jose import JWTError

from haggle.core.security import decode_token

logger = logging.getLogger(__name__)

class CurrentUser(BaseModel):
    """The authenticated caller. Resolved from the bearer token; trusted as-is."""
    id: int

class AuthContext(BaseModel):
    user: CurrentUser
    token: Optional[str] = None

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

def get_auth_context_from_token(token: str) -> AuthContext:
    """
    Decodes a JWT and builds an AuthContext. The `sub` claim must hold the
    integer user id.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token payload")
    if user_id <= 0:
        raise _unauthorized("Invalid token payload")
    return AuthContext(user=CurrentUser(id=user_id), token=token)

async def get_auth(request: Request) -> AuthContext:
    """
    Builds the AuthContext from the token the middleware placed on
    request.state, caching it there for the rest of the request.
    """
    cached = getattr(request.state, "auth", None)
    if cached is not None:
        return cached

    token = getattr(request.state, "token", None)
    if not token:
        raise _unauthorized("Not authenticated")

    auth = get_auth_context_from_token(token)
    request.state.auth = auth
    return auth
