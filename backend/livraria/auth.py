"""Authentication helpers and FastAPI security dependencies.

This module decodes JWT bearer tokens and exposes dependencies that
return the authenticated `User`:

- `get_current_user`: any signed-in account
- `get_optional_user`: the account if a token was sent, else None
- `require_seller`: SELLER or admin accounts
- `require_admin`: ADMIN role or the configured `ADMIN_EMAIL` account

Token verification raises HTTPExceptions so the dependencies can be
used directly on routes. The user is loaded through the request's own
session so relationships stay usable inside the handler.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session
from .services import is_admin

bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str):
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def _load_user(token: str, session: Session) -> models.User:
    payload = decode_token(token)
    user_id = payload.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(session).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user or raises 401."""
    return _load_user(credentials.credentials, session)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(optional_bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[models.User]:
    """Like `get_current_user`, but a missing or unusable token means anonymous."""
    if credentials is None:
        return None
    try:
        return _load_user(credentials.credentials, session)
    except HTTPException:
        return None


def require_seller(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.Role.SELLER and not is_admin(user):
        raise HTTPException(status_code=403, detail='seller account required')
    return user


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if not is_admin(user):
        raise HTTPException(status_code=403, detail='administrator access required')
    return user
