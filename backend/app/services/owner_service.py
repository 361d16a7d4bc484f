"""
Owner applications: submit/refresh a business profile, admin review.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.clock import isoformat, utcnow
from app.core.constants import Capability, OwnerStatus, Role, Severity
from app.core.errors import AuthorizationError, NotFoundError, StateError, ValidationError
from app.models.owner import Owner
from app.models.user import User
from app.services import notifications

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("business_name", "address", "city", "phone")


def apply_as_owner(db: Session, user: User, profile: dict[str, Any]) -> Owner:
    """
    Create or refresh the caller's pending owner profile. Approved owners cannot re-apply;
    a rejected owner re-applying goes back to pending.
    """
    if user.role == Role.ADMIN:
        raise AuthorizationError()
    clean = {}
    for field in PROFILE_FIELDS:
        value = profile.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} is required")
        clean[field] = value.strip()

    owner = db.query(Owner).filter(Owner.user_id == user.id).first()
    if owner and owner.status == OwnerStatus.APPROVED:
        raise StateError("Owner profile is already approved")
    try:
        if owner is None:
            owner = Owner(user_id=user.id, status=OwnerStatus.PENDING, **clean)
            db.add(owner)
        else:
            for field, value in clean.items():
                setattr(owner, field, value)
            owner.status = OwnerStatus.PENDING
            owner.approved_at = None
        if user.role == Role.USER:
            user.role = Role.OWNER
        db.flush()
        note = notifications.record(
            db,
            user.id,
            "Owner Application Submitted",
            "Your application to become a parking owner has been submitted for review.",
            Severity.INFO,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    db.refresh(owner)
    logger.info("apply_as_owner: owner=%s user=%s", owner.id, user.id)
    return owner


def list_pending_owners(db: Session, actor: User) -> list[Owner]:
    if not actor.can(Capability.REVIEW_OWNERS):
        raise AuthorizationError()
    return (
        db.query(Owner)
        .filter(Owner.status == OwnerStatus.PENDING)
        .order_by(Owner.created_at.asc(), Owner.id.asc())
        .all()
    )


def decide_owner(db: Session, actor: User, owner_id: str, status: str) -> Owner:
    if not actor.can(Capability.REVIEW_OWNERS):
        raise AuthorizationError()
    try:
        status = OwnerStatus(status)
    except ValueError:
        status = None
    if status not in (OwnerStatus.APPROVED, OwnerStatus.REJECTED):
        raise ValidationError("status must be approved or rejected")
    owner = db.query(Owner).filter(Owner.id == owner_id).first()
    if owner is None:
        raise NotFoundError("Owner not found")
    if owner.status != OwnerStatus.PENDING:
        raise StateError(f"Owner application is already {owner.status.value}")
    try:
        owner.status = status
        owner.approved_at = utcnow() if status == OwnerStatus.APPROVED else None
        note = notifications.record(
            db,
            owner.user_id,
            f"Owner Application {status.value}",
            f"Your application to become a parking owner has been {status.value}.",
            Severity.SUCCESS if status == OwnerStatus.APPROVED else Severity.ERROR,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    db.refresh(owner)
    logger.info("decide_owner: owner=%s -> %s by %s", owner.id, status.value, actor.id)
    return owner


def serialize_owner(owner: Owner) -> dict[str, Any]:
    return {
        "id": owner.id,
        "user_id": owner.user_id,
        "business_name": owner.business_name,
        "address": owner.address,
        "city": owner.city,
        "phone": owner.phone,
        "status": owner.status.value,
        "created_at": isoformat(owner.created_at),
        "approved_at": isoformat(owner.approved_at),
    }
