"""
Password hashing (werkzeug) and signed access tokens (PyJWT, HS256).
Token payload: sub = user id, role = Role value, iat/exp epoch seconds.
"""
import logging
from datetime import timedelta

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.config import settings
from app.core.clock import utcnow
from app.core.errors import AuthenticationError

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def create_access_token(user_id: str, role: str, *, ttl_minutes: int | None = None) -> str:
    now = utcnow()
    ttl = ttl_minutes if ttl_minutes is not None else settings.access_token_ttl_minutes
    payload = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    return token


def decode_access_token(token: str) -> dict:
    """Return the verified payload or raise AuthenticationError."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired") from None
    except jwt.PyJWTError as e:
        logger.debug("Rejected access token: %s", e)
        raise AuthenticationError("Invalid token") from None
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token")
    return payload
