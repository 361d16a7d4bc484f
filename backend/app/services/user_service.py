"""
Accounts: registration, login, admin creation and removal.
"""
import logging
import re
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import isoformat
from app.core.constants import Capability, OwnerStatus, Role
from app.core.errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.security import create_access_token, hash_password, verify_password
from app.models.booking import Booking
from app.models.notification import Notification
from app.models.owner import Owner
from app.models.parking_slot import ParkingSlot
from app.models.user import User

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
SELF_SERVICE_ROLES = (Role.USER, Role.OWNER)


def _validate_account(username: str, email: str, password: str) -> tuple[str, str]:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValidationError("username is required")
    if not _EMAIL_RE.match(email):
        raise ValidationError("email is not valid")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    return username, email


def _ensure_unique(db: Session, username: str, email: str) -> None:
    existing = db.query(User).filter(or_(User.email == email, User.username == username)).first()
    if existing:
        raise ValidationError("User already exists")


def _create_user(db: Session, username: str, email: str, password: str, role: Role) -> User:
    user = User(username=username, email=email, password_hash=hash_password(password), role=role)
    db.add(user)
    db.flush()
    return user


def register(db: Session, username: str, email: str, password: str, role: str = Role.USER.value) -> User:
    """Self-service sign-up. Owners also get a pending business profile."""
    try:
        role = Role(role)
    except ValueError:
        role = None
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("role must be user or owner")
    username, email = _validate_account(username, email, password)
    _ensure_unique(db, username, email)
    user = _create_user(db, username, email, password, role)
    if role == Role.OWNER:
        db.add(Owner(user_id=user.id, business_name=f"{username}'s Parking Business", status=OwnerStatus.PENDING))
    db.commit()
    db.refresh(user)
    logger.info("register: user=%s role=%s", user.id, role.value)
    return user


def login(db: Session, email: str, password: str) -> tuple[User, str]:
    email = (email or "").strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return user, create_access_token(user.id, user.role.value)


def get_user(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def create_admin(db: Session, actor: User, username: str, email: str, password: str) -> User:
    if not actor.can(Capability.MANAGE_USERS):
        raise AuthorizationError()
    username, email = _validate_account(username, email, password)
    _ensure_unique(db, username, email)
    admin = _create_user(db, username, email, password, Role.ADMIN)
    db.commit()
    db.refresh(admin)
    logger.info("create_admin: admin=%s created by %s", admin.id, actor.id)
    return admin


def ensure_default_admin(db: Session) -> User | None:
    """Create the bootstrap admin from settings if no admin exists. Returns the new admin or None."""
    if db.query(User).filter(User.role == Role.ADMIN).first():
        logger.info("Default admin already exists")
        return None
    admin = _create_user(
        db,
        settings.default_admin_username,
        settings.default_admin_email.lower(),
        settings.default_admin_password,
        Role.ADMIN,
    )
    db.commit()
    logger.info("Default admin user created: %s", admin.email)
    return admin


def delete_user(db: Session, actor: User, user_id: str) -> None:
    """
    Remove an account that nothing references. Users with bookings, or owners with slots,
    are refused with ConflictError (bookings are never deleted).
    """
    if not actor.can(Capability.MANAGE_USERS):
        raise AuthorizationError()
    if actor.id == user_id:
        raise ValidationError("Admins cannot delete themselves")
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if db.query(Booking.id).filter(Booking.user_id == user.id).first() is not None:
        raise ConflictError("User has bookings and cannot be deleted")
    owner = db.query(Owner).filter(Owner.user_id == user.id).first()
    if owner and db.query(ParkingSlot.id).filter(ParkingSlot.owner_id == owner.id).first() is not None:
        raise ConflictError("Owner has parking slots and cannot be deleted")
    db.query(Notification).filter(Notification.user_id == user.id).delete(synchronize_session=False)
    if owner:
        db.delete(owner)
    db.delete(user)
    db.commit()
    logger.info("delete_user: user=%s removed by %s", user_id, actor.id)


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
        "created_at": isoformat(user.created_at),
    }
