"""
Booking state machine: request, decide, capture payment, finalize.

Every status write is a conditional UPDATE guarded by BOOKING_TRANSITIONS and the
expected current status, so repeated or racing calls fail with StateError instead of
applying twice. Approval reserves the slot through app.services.availability in the
same transaction. Notifications are written in that transaction and pushed only after
commit.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import as_utc, isoformat, utcnow
from app.core.constants import BOOKING_TRANSITIONS, BookingStatus, Capability, Severity
from app.core.errors import (
    MSG_PAYMENT_RETRY,
    MSG_SLOT_TAKEN,
    AuthorizationError,
    ConflictError,
    PaymentError,
    StateError,
    ValidationError,
)
from app.models.booking import Booking
from app.models.owner import Owner
from app.models.parking_slot import ParkingSlot
from app.models.user import User
from app.services import availability, notifications
from app.services.payments import ChargeResult, PaymentGateway
from app.services.pricing import compute_total

logger = logging.getLogger(__name__)

DECISIONS = (BookingStatus.APPROVED, BookingStatus.REJECTED)
OUTCOMES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

# (title, message, severity) per status the user is told about
_STATUS_NOTICES: dict[BookingStatus, tuple[str, str, Severity]] = {
    BookingStatus.PENDING: ("Booking Created", "Your parking booking has been submitted for approval.", Severity.INFO),
    BookingStatus.APPROVED: ("Booking approved", "Your parking booking has been approved.", Severity.SUCCESS),
    BookingStatus.REJECTED: ("Booking rejected", "Your parking booking has been rejected.", Severity.WARNING),
    BookingStatus.COMPLETED: ("Booking completed", "Your parking booking has been completed.", Severity.INFO),
    BookingStatus.CANCELLED: ("Booking cancelled", "Your parking booking has been cancelled.", Severity.WARNING),
}

# Postgres deadlock / lock_not_available; SQLite busy
_LOCK_PGCODES = {"40P01", "55P03"}


def _is_lock_contention(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _LOCK_PGCODES:
        return True
    message = str(exc).lower()
    return "database is locked" in message or "deadlock detected" in message


def _parse_status(value, allowed: tuple[BookingStatus, ...], field: str) -> BookingStatus:
    try:
        status = BookingStatus(value)
    except ValueError:
        status = None
    if status not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(s.value for s in allowed)}")
    return status


def _notify(db: Session, booking: Booking, status: BookingStatus):
    title, message, severity = _STATUS_NOTICES[status]
    return notifications.record(db, booking.user_id, title, message, severity)


def _transition(db: Session, booking: Booking, to: BookingStatus, **fields: Any) -> None:
    """
    Conditional status write: only applies if the row is still in booking.status.
    Raises StateError for transitions outside the table or when the row moved underneath us.
    """
    current = booking.status
    if to not in BOOKING_TRANSITIONS[current]:
        raise StateError(f"Cannot move booking from {current.value} to {to.value}")
    values = {Booking.status: to}
    values.update({getattr(Booking, k): v for k, v in fields.items()})
    updated = (
        db.query(Booking)
        .filter(Booking.id == booking.id, Booking.status == current)
        .update(values, synchronize_session=False)
    )
    if not updated:
        raise StateError("Booking status changed, please refresh")
    booking.status = to
    for k, v in fields.items():
        setattr(booking, k, v)
    logger.info("booking %s: %s -> %s", booking.id, current.value, to.value)


def _load_fresh(db: Session, booking_id: str) -> Booking | None:
    return db.query(Booking).filter(Booking.id == booking_id).populate_existing().first()


def _slot_owner(db: Session, booking: Booking) -> Owner | None:
    return (
        db.query(Owner)
        .join(ParkingSlot, ParkingSlot.owner_id == Owner.id)
        .filter(ParkingSlot.id == booking.slot_id)
        .first()
    )


def _booking_for_slot_owner(db: Session, user: User, booking_id: str) -> Booking:
    booking = _load_fresh(db, booking_id)
    if booking is None:
        raise AuthorizationError()
    owner = _slot_owner(db, booking)
    if owner is None or owner.user_id != user.id or not owner.is_approved:
        raise AuthorizationError()
    return booking


def request_booking(
    db: Session,
    user: User,
    slot_id: str,
    start_time: datetime,
    end_time: datetime,
    duration: int,
    *,
    now: datetime | None = None,
) -> Booking:
    """Create a pending booking. Availability is checked at submission only."""
    if not user.can(Capability.REQUEST_BOOKINGS):
        raise AuthorizationError()
    now = as_utc(now) or utcnow()
    start, end = as_utc(start_time), as_utc(end_time)
    if start is None or end is None:
        raise ValidationError("start_time and end_time are required")
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
        raise ValidationError("duration must be a positive whole number of hours")
    if end <= start:
        raise ValidationError("end_time must be after start_time")
    if (end - start).total_seconds() != duration * 3600:
        raise ValidationError("duration must equal end_time - start_time in hours")
    if start <= now:
        raise ValidationError("start_time must be in the future")

    slot = db.query(ParkingSlot).filter(ParkingSlot.id == slot_id).first()
    if slot is None or slot.deleted_at is not None or not slot.is_available:
        raise ValidationError("Parking slot not available")
    owner = db.query(Owner).filter(Owner.id == slot.owner_id).first()
    if owner is None or not owner.is_approved:
        raise ValidationError("Parking slot not available")

    price = compute_total(slot.price_per_hour, duration)
    booking = Booking(
        user_id=user.id,
        slot_id=slot.id,
        start_time=start,
        end_time=end,
        duration=duration,
        base_amount=price.base,
        service_fee=price.service_fee,
        tax_amount=price.tax,
        total_amount=price.total,
        status=BookingStatus.PENDING,
    )
    try:
        db.add(booking)
        db.flush()
        note = _notify(db, booking, BookingStatus.PENDING)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    db.refresh(booking)
    logger.info("request_booking: booking=%s slot=%s user=%s total=%s", booking.id, slot.id, user.id, price.total)
    return booking


def decide(db: Session, user: User, booking_id: str, decision) -> Booking:
    """
    Owner approves or rejects a pending booking. Approval reserves the interval atomically;
    if another approved/paid booking overlaps, raises ConflictError and the booking stays pending.
    """
    decision = _parse_status(decision, DECISIONS, "decision")
    if not user.can(Capability.DECIDE_BOOKINGS):
        raise AuthorizationError()
    booking = _booking_for_slot_owner(db, user, booking_id)
    if booking.status != BookingStatus.PENDING:
        raise StateError(f"Booking is already {booking.status.value}")

    now = utcnow()
    try:
        if decision == BookingStatus.APPROVED:
            if not availability.check_and_reserve(db, booking, now):
                raise ConflictError(MSG_SLOT_TAKEN)
            _transition(db, booking, BookingStatus.APPROVED, decided_at=now, approved_at=now)
        else:
            _transition(db, booking, BookingStatus.REJECTED, decided_at=now)
        note = _notify(db, booking, decision)
        db.commit()
    except OperationalError as e:
        db.rollback()
        if _is_lock_contention(e):
            logger.warning("decide: booking=%s lost slot lock: %s", booking_id, e)
            raise ConflictError(MSG_SLOT_TAKEN) from None
        raise
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    db.refresh(booking)
    return booking


def capture_payment(db: Session, user: User, booking_id: str, gateway: PaymentGateway) -> ChargeResult:
    """
    Charge an approved booking. On provider failure the booking stays approved (retryable).
    The provider call happens outside any open write so a slow provider never holds locks.
    """
    if not user.can(Capability.PAY_BOOKINGS):
        raise AuthorizationError()
    booking = _load_fresh(db, booking_id)
    if booking is None or booking.user_id != user.id:
        raise AuthorizationError()
    if booking.status != BookingStatus.APPROVED:
        raise StateError(f"Only approved bookings can be paid; booking is {booking.status.value}")
    amount, user_id = booking.total_amount, user.id
    # Close the read transaction before the network call
    db.rollback()

    try:
        charge = gateway.create_charge(amount, settings.payment_currency, booking_id, user_id)
    except PaymentError:
        raise
    except Exception as e:
        logger.warning("capture_payment: booking=%s gateway error: %s", booking_id, e)
        raise PaymentError(MSG_PAYMENT_RETRY) from e

    booking = _load_fresh(db, booking_id)
    try:
        _transition(db, booking, BookingStatus.PAID, payment_reference=charge.reference, paid_at=utcnow())
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("capture_payment: booking=%s charged (%s) but status moved on", booking_id, charge.reference)
        raise
    logger.info("capture_payment: booking=%s reference=%s", booking_id, charge.reference)
    return charge


def finalize(
    db: Session,
    booking_id: str,
    outcome,
    *,
    actor: User | None = None,
    now: datetime | None = None,
) -> Booking:
    """
    Complete or cancel an approved/paid booking and release its occupancy.
    actor=None is the system (housekeeping job); otherwise the slot owner or an admin.
    """
    outcome = _parse_status(outcome, OUTCOMES, "status")
    booking = _load_fresh(db, booking_id)
    if actor is not None:
        if booking is None:
            raise AuthorizationError()
        if not actor.can(Capability.FINALIZE_ANY_BOOKING):
            owner = _slot_owner(db, booking)
            if not actor.can(Capability.FINALIZE_BOOKINGS) or owner is None or owner.user_id != actor.id:
                raise AuthorizationError()
    elif booking is None:
        raise ValidationError("Booking not found")
    if booking.status not in (BookingStatus.APPROVED, BookingStatus.PAID):
        raise StateError(f"Only approved or paid bookings can be finalized; booking is {booking.status.value}")

    now = as_utc(now) or utcnow()
    try:
        _transition(db, booking, outcome, finalized_at=now)
        availability.release(db, booking.slot_id, now)
        note = _notify(db, booking, outcome)
        db.commit()
    except OperationalError as e:
        db.rollback()
        if _is_lock_contention(e):
            raise ConflictError("Slot busy, please retry") from None
        raise
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    db.refresh(booking)
    return booking


def expire_pending(db: Session, booking: Booking, now: datetime) -> Booking:
    """System rejection of a pending request whose start time has passed."""
    try:
        _transition(db, booking, BookingStatus.REJECTED, decided_at=now)
        note = notifications.record(
            db,
            booking.user_id,
            "Booking expired",
            "Your parking booking request expired before the owner responded.",
            Severity.WARNING,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifications.publish([note])
    return booking


def list_user_bookings(db: Session, user: User) -> list[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.user_id == user.id)
        .order_by(Booking.created_at.desc(), Booking.id.asc())
        .all()
    )


def list_owner_bookings(db: Session, user: User, status=None) -> list[Booking]:
    owner = db.query(Owner).filter(Owner.user_id == user.id).first()
    if owner is None:
        raise AuthorizationError()
    q = (
        db.query(Booking)
        .join(ParkingSlot, Booking.slot_id == ParkingSlot.id)
        .filter(ParkingSlot.owner_id == owner.id)
    )
    if status is not None:
        q = q.filter(Booking.status == _parse_status(status, tuple(BookingStatus), "status"))
    return q.order_by(Booking.created_at.desc(), Booking.id.asc()).all()


def serialize_booking(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "user_id": booking.user_id,
        "slot_id": booking.slot_id,
        "start_time": isoformat(booking.start_time),
        "end_time": isoformat(booking.end_time),
        "duration": booking.duration,
        "base_amount": str(booking.base_amount),
        "service_fee": str(booking.service_fee),
        "tax_amount": str(booking.tax_amount),
        "total_amount": str(booking.total_amount),
        "status": booking.status.value,
        "payment_reference": booking.payment_reference,
        "created_at": isoformat(booking.created_at),
        "approved_at": isoformat(booking.approved_at),
        "paid_at": isoformat(booking.paid_at),
        "finalized_at": isoformat(booking.finalized_at),
    }
