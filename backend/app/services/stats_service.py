"""Dashboard aggregates for owners and admins (plain SQL aggregations)."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import month_start, utcnow
from app.core.constants import (
    OCCUPYING_BOOKING_STATUSES,
    REVENUE_BOOKING_STATUSES,
    BookingStatus,
    Capability,
    OwnerStatus,
)
from app.core.errors import AuthorizationError
from app.models.booking import Booking
from app.models.owner import Owner
from app.models.parking_slot import ParkingSlot
from app.models.user import User


def _money(value) -> str:
    return str(Decimal(value or 0).quantize(Decimal("0.01")))


def owner_stats(db: Session, user: User, now: datetime | None = None) -> dict:
    if not user.can(Capability.VIEW_OWNER_STATS):
        raise AuthorizationError()
    owner = db.query(Owner).filter(Owner.user_id == user.id).first()
    if owner is None:
        raise AuthorizationError()
    now = now or utcnow()

    total_slots = (
        db.query(func.count(ParkingSlot.id))
        .filter(ParkingSlot.owner_id == owner.id, ParkingSlot.deleted_at.is_(None))
        .scalar()
    )
    owned = (
        db.query(Booking)
        .join(ParkingSlot, Booking.slot_id == ParkingSlot.id)
        .filter(ParkingSlot.owner_id == owner.id)
    )
    occupied = (
        owned.filter(
            Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
            Booking.start_time <= now,
            Booking.end_time > now,
        )
        .with_entities(func.count(func.distinct(Booking.slot_id)))
        .scalar()
    )
    pending = owned.filter(Booking.status == BookingStatus.PENDING).with_entities(func.count(Booking.id)).scalar()
    revenue = (
        owned.filter(Booking.status.in_(REVENUE_BOOKING_STATUSES), Booking.paid_at >= month_start(now))
        .with_entities(func.coalesce(func.sum(Booking.total_amount), 0))
        .scalar()
    )
    return {
        "total_slots": total_slots or 0,
        "occupied_slots": occupied or 0,
        "monthly_revenue": _money(revenue),
        "pending_requests": pending or 0,
    }


def system_stats(db: Session, user: User, now: datetime | None = None) -> dict:
    if not user.can(Capability.VIEW_SYSTEM_STATS):
        raise AuthorizationError()
    now = now or utcnow()
    total_users = db.query(func.count(User.id)).scalar()
    approved_owners = db.query(func.count(Owner.id)).filter(Owner.status == OwnerStatus.APPROVED).scalar()
    active = db.query(func.count(Booking.id)).filter(Booking.status.in_(OCCUPYING_BOOKING_STATUSES)).scalar()
    revenue = (
        db.query(func.coalesce(func.sum(Booking.total_amount), 0))
        .filter(Booking.status.in_(REVENUE_BOOKING_STATUSES), Booking.paid_at >= month_start(now))
        .scalar()
    )
    return {
        "total_users": total_users or 0,
        "total_owners": approved_owners or 0,
        "active_bookings": active or 0,
        "monthly_revenue": _money(revenue),
    }
