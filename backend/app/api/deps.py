"""
Request dependencies: the current user from a Bearer token, and capability gates.
"""
from typing import Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.constants import Capability
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.security import decode_access_token
from app.db.session import get_db
from app.models.user import User
from app.services.user_service import get_user

_bearer = HTTPBearer(auto_error=False)


def user_from_token(db: Session, token: str | None) -> User:
    if not token:
        raise AuthenticationError("Missing bearer token")
    payload = decode_access_token(token)
    user = get_user(db, payload["sub"])
    if user is None:
        raise AuthenticationError("Invalid token")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: Session = Depends(get_db),
) -> User:
    return user_from_token(db, credentials.credentials if credentials else None)


def require(capability: Capability) -> Callable[..., User]:
    """Dependency factory: current user holding capability, else 403."""

    def _dependency(user: User = Depends(get_current_user)) -> User:
        if not user.can(capability):
            raise AuthorizationError()
        return user

    return _dependency
