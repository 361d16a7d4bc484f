"""
Availability coordinator: the only code that writes ParkingSlot.is_available and
ParkingSlot.occupancy_version.

Approval runs check_and_reserve inside the approving transaction. The slot row is
locked (SELECT ... FOR UPDATE on Postgres; SQLite ignores the clause) and the write is a
compare-and-swap on occupancy_version, so two approvals racing for overlapping windows
cannot both commit: the loser either sees the winner's booking or misses the CAS.

Conflicts are interval-aware ([start, end) overlap against approved/paid bookings), so a
slot can hold several non-overlapping approved bookings. The is_available flag says
whether the slot is free right now: an approved booking that starts later leaves it
True, and refresh_occupancy (run by housekeeping) closes the slot once that booking begins.
"""
import logging
from datetime import datetime

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.constants import ACTIVE_BOOKING_STATUSES, OCCUPYING_BOOKING_STATUSES
from app.core.errors import ConflictError, NotFoundError
from app.models.booking import Booking
from app.models.parking_slot import ParkingSlot

logger = logging.getLogger(__name__)


def lock_slot(db: Session, slot_id: str) -> ParkingSlot:
    """Load the slot row under a write lock and refresh any stale identity-map copy."""
    slot = (
        db.query(ParkingSlot)
        .filter(ParkingSlot.id == slot_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if slot is None:
        raise NotFoundError("Slot not found")
    return slot


def overlapping_bookings(
    db: Session,
    slot_id: str,
    start: datetime,
    end: datetime,
    *,
    exclude_booking_id: str | None = None,
) -> list[Booking]:
    """Approved/paid bookings of the slot whose [start_time, end_time) intersects [start, end)."""
    q = db.query(Booking).filter(
        Booking.slot_id == slot_id,
        Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
        Booking.start_time < as_utc(end),
        Booking.end_time > as_utc(start),
    )
    if exclude_booking_id:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.all()


def has_active_bookings(db: Session, slot_id: str) -> bool:
    return db.query(
        exists().where(and_(Booking.slot_id == slot_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES)))
    ).scalar()


def _occupied_at(db: Session, slot_id: str, now: datetime) -> bool:
    now = as_utc(now)
    return db.query(
        exists().where(
            and_(
                Booking.slot_id == slot_id,
                Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
                Booking.start_time <= now,
                Booking.end_time > now,
            )
        )
    ).scalar()


def covers(booking: Booking, now: datetime) -> bool:
    return as_utc(booking.start_time) <= as_utc(now) < as_utc(booking.end_time)


def _compare_and_swap(db: Session, slot: ParkingSlot, expected_version: int, is_available: bool) -> bool:
    updated = (
        db.query(ParkingSlot)
        .filter(ParkingSlot.id == slot.id, ParkingSlot.occupancy_version == expected_version)
        .update(
            {
                ParkingSlot.is_available: is_available,
                ParkingSlot.occupancy_version: expected_version + 1,
            },
            synchronize_session=False,
        )
    )
    if updated:
        slot.is_available = is_available
        slot.occupancy_version = expected_version + 1
    return bool(updated)


def check_and_reserve(db: Session, booking: Booking, now: datetime | None = None) -> bool:
    """
    Reserve booking's interval on its slot. Returns False when another approved/paid booking
    overlaps or a concurrent approval committed first. The slot is only marked unavailable
    when the reserved interval contains now. Does not commit; the caller owns the
    transaction and must roll back on False.
    """
    now = as_utc(now) or utcnow()
    slot = lock_slot(db, booking.slot_id)
    version = slot.occupancy_version
    clashes = overlapping_bookings(
        db, slot.id, booking.start_time, booking.end_time, exclude_booking_id=booking.id
    )
    if clashes:
        logger.warning(
            "check_and_reserve: slot=%s booking=%s overlaps %s",
            slot.id, booking.id, [b.id for b in clashes],
        )
        return False
    available = not (covers(booking, now) or _occupied_at(db, slot.id, now))
    if not _compare_and_swap(db, slot, version, is_available=available):
        logger.warning("check_and_reserve: slot=%s booking=%s lost occupancy CAS at version %s", slot.id, booking.id, version)
        return False
    return True


def release(db: Session, slot_id: str, now: datetime | None = None) -> ParkingSlot:
    """
    Recompute occupancy after a booking left approved/paid. The slot becomes available
    unless another approved/paid booking occupies now. Does not commit.
    """
    now = as_utc(now) or utcnow()
    slot = lock_slot(db, slot_id)
    available = not _occupied_at(db, slot_id, now)
    if not _compare_and_swap(db, slot, slot.occupancy_version, is_available=available):
        # Row is locked on Postgres; on SQLite a concurrent writer means we retry once with fresh state
        slot = lock_slot(db, slot_id)
        available = not _occupied_at(db, slot_id, now)
        if not _compare_and_swap(db, slot, slot.occupancy_version, is_available=available):
            raise ConflictError("Slot changed concurrently, please retry")
    logger.info("release: slot=%s is_available=%s", slot_id, available)
    return slot


def slots_starting_occupancy(db: Session, now: datetime) -> list[str]:
    """Listed slots with an approved/paid booking running at now."""
    now = as_utc(now)
    rows = (
        db.query(Booking.slot_id)
        .join(ParkingSlot, Booking.slot_id == ParkingSlot.id)
        .filter(
            ParkingSlot.is_available.is_(True),
            Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
            Booking.start_time <= now,
            Booking.end_time > now,
        )
        .distinct()
        .all()
    )
    return [r.slot_id for r in rows]


def refresh_occupancy(db: Session, slot_id: str, now: datetime | None = None) -> bool:
    """
    Close a listed slot whose approved/paid booking has begun. Returns True when the flag
    changed. Does not commit.
    """
    now = as_utc(now) or utcnow()
    slot = lock_slot(db, slot_id)
    if not slot.is_available or not _occupied_at(db, slot_id, now):
        return False
    if not _compare_and_swap(db, slot, slot.occupancy_version, is_available=False):
        raise ConflictError("Slot changed concurrently, please retry")
    logger.info("refresh_occupancy: slot=%s is_available=False", slot_id)
    return True


def override(db: Session, slot: ParkingSlot, is_available: bool) -> ParkingSlot:
    """Manual owner toggle, allowed only while no booking of the slot is active. Does not commit."""
    slot = lock_slot(db, slot.id)
    if has_active_bookings(db, slot.id):
        raise ConflictError("Slot has active bookings; availability is managed by bookings")
    if not _compare_and_swap(db, slot, slot.occupancy_version, is_available=is_available):
        raise ConflictError("Slot changed concurrently, please retry")
    logger.info("override: slot=%s is_available=%s", slot.id, is_available)
    return slot
