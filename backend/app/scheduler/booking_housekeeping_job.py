"""
Booking housekeeping: runs every HOUSEKEEPING_INTERVAL_SECONDS.

- pending requests whose start time has passed -> rejected (expired)
- paid bookings whose end time has passed -> completed (releases the slot)
- approved but unpaid bookings whose end time has passed -> cancelled (releases the slot)
- listed slots whose approved/paid booking has begun -> marked unavailable

Each booking and slot is handled in its own transaction; one failure does not stop the batch.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.constants import HOUSEKEEPING_BATCH_LIMIT, BookingStatus
from app.core.errors import DomainError
from app.db.session import SessionLocal
from app.models.booking import Booking
from app.services import availability, booking_service

logger = logging.getLogger(__name__)


def _due(db: Session, status: BookingStatus, column, now: datetime) -> list[str]:
    rows = (
        db.query(Booking.id)
        .filter(Booking.status == status, column <= now)
        .order_by(column.asc())
        .limit(HOUSEKEEPING_BATCH_LIMIT)
        .all()
    )
    return [r.id for r in rows]


def _close_started_slots(db: Session, now: datetime) -> int:
    closed = 0
    for slot_id in availability.slots_starting_occupancy(db, now)[:HOUSEKEEPING_BATCH_LIMIT]:
        try:
            if availability.refresh_occupancy(db, slot_id, now):
                closed += 1
            db.commit()
        except DomainError as e:
            db.rollback()
            logger.info("Housekeeping: skip occupancy refresh for slot %s: %s", slot_id, e)
    return closed


def sweep_bookings(db: Session, now: datetime | None = None) -> dict[str, int]:
    """One housekeeping pass. Returns counts per action."""
    now = now or utcnow()
    counts = {"expired": 0, "completed": 0, "cancelled": 0, "occupied": 0}

    for booking_id in _due(db, BookingStatus.PENDING, Booking.start_time, now):
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        try:
            booking_service.expire_pending(db, booking, now)
            counts["expired"] += 1
        except DomainError as e:
            logger.info("Housekeeping: skip expiring booking %s: %s", booking_id, e)

    for status, outcome, key in (
        (BookingStatus.PAID, BookingStatus.COMPLETED, "completed"),
        (BookingStatus.APPROVED, BookingStatus.CANCELLED, "cancelled"),
    ):
        for booking_id in _due(db, status, Booking.end_time, now):
            try:
                booking_service.finalize(db, booking_id, outcome, actor=None, now=now)
                counts[key] += 1
            except DomainError as e:
                logger.info("Housekeeping: skip finalizing booking %s: %s", booking_id, e)

    counts["occupied"] = _close_started_slots(db, now)
    return counts


def run_booking_housekeeping_job() -> None:
    db = SessionLocal()
    try:
        counts = sweep_bookings(db)
        if any(counts.values()):
            logger.info("Booking housekeeping: %s", counts)
    except Exception as e:
        logger.warning("Booking housekeeping failed: %s", e, exc_info=True)
    finally:
        db.close()
