"""
Slot registry: listings owned by approved owners.

Occupancy fields (is_available, occupancy_version) are never written here; manual
availability toggles go through app.services.availability.override.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.constants import SlotType, VehicleType
from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models.booking import Booking
from app.models.owner import Owner
from app.models.parking_slot import ParkingSlot
from app.models.user import User
from app.services import availability
from app.services.pricing import to_price

logger = logging.getLogger(__name__)

REQUIRED_SLOT_FIELDS = ("name", "address", "city", "vehicle_type", "slot_type", "price_per_hour")
EDITABLE_SLOT_FIELDS = frozenset({"name", "address", "city", "vehicle_type", "slot_type", "price_per_hour", "description"})
OCCUPANCY_FIELDS = frozenset({"is_available", "occupancy_version"})


def _clean_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _parse_enum(field: str, enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}") from None


def _validate_price(value: Any):
    price = to_price(value)
    if price <= 0:
        raise ValidationError("price_per_hour must be greater than 0")
    return price


def _validated_changes(attrs: dict[str, Any]) -> dict[str, Any]:
    """Normalize the editable attributes present in attrs."""
    clean: dict[str, Any] = {}
    for field in ("name", "address", "city"):
        if field in attrs:
            clean[field] = _clean_text(field, attrs[field])
    if "vehicle_type" in attrs:
        clean["vehicle_type"] = _parse_enum("vehicle_type", VehicleType, attrs["vehicle_type"])
    if "slot_type" in attrs:
        clean["slot_type"] = _parse_enum("slot_type", SlotType, attrs["slot_type"])
    if "price_per_hour" in attrs:
        clean["price_per_hour"] = _validate_price(attrs["price_per_hour"])
    if "description" in attrs:
        desc = attrs["description"]
        clean["description"] = desc.strip() if isinstance(desc, str) and desc.strip() else None
    return clean


def get_owner_profile(db: Session, user: User) -> Owner | None:
    return db.query(Owner).filter(Owner.user_id == user.id).first()


def require_approved_owner(db: Session, user: User) -> Owner:
    owner = get_owner_profile(db, user)
    if owner is None or not owner.is_approved:
        raise AuthorizationError()
    return owner


def _listed(db: Session):
    return db.query(ParkingSlot).filter(ParkingSlot.deleted_at.is_(None))


def get_slot(db: Session, slot_id: str) -> ParkingSlot:
    slot = _listed(db).filter(ParkingSlot.id == slot_id).first()
    if slot is None:
        raise NotFoundError("Slot not found")
    return slot


def get_owned_slot(db: Session, user: User, slot_id: str) -> ParkingSlot:
    """Slot owned by user's owner profile. Missing and foreign slots look the same."""
    owner = get_owner_profile(db, user)
    slot = _listed(db).filter(ParkingSlot.id == slot_id).first()
    if owner is None or slot is None or slot.owner_id != owner.id:
        raise AuthorizationError()
    return slot


def create_slot(db: Session, user: User, attrs: dict[str, Any]) -> ParkingSlot:
    owner = require_approved_owner(db, user)
    missing = [f for f in REQUIRED_SLOT_FIELDS if attrs.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    clean = _validated_changes(attrs)
    slot = ParkingSlot(owner_id=owner.id, is_available=True, occupancy_version=0, **clean)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    logger.info("create_slot: slot=%s owner=%s city=%s", slot.id, owner.id, slot.city)
    return slot


def list_available(db: Session, city: str | None = None, vehicle_type: str | None = None) -> list[ParkingSlot]:
    """Currently bookable slots, equality-filtered, in creation order."""
    q = _listed(db).filter(ParkingSlot.is_available.is_(True))
    if city:
        q = q.filter(ParkingSlot.city == city)
    if vehicle_type:
        q = q.filter(ParkingSlot.vehicle_type == _parse_enum("vehicle_type", VehicleType, vehicle_type))
    return q.order_by(ParkingSlot.created_at.asc(), ParkingSlot.id.asc()).all()


def list_owner_slots(db: Session, user: User) -> list[ParkingSlot]:
    owner = get_owner_profile(db, user)
    if owner is None:
        raise AuthorizationError()
    return (
        _listed(db)
        .filter(ParkingSlot.owner_id == owner.id)
        .order_by(ParkingSlot.created_at.desc(), ParkingSlot.id.asc())
        .all()
    )


def update_attributes(db: Session, user: User, slot_id: str, changes: dict[str, Any]) -> ParkingSlot:
    """Owner edit of static attributes; occupancy is not editable here."""
    slot = get_owned_slot(db, user, slot_id)
    if OCCUPANCY_FIELDS & changes.keys():
        raise ValidationError("is_available is managed by bookings; use the availability endpoint")
    unknown = changes.keys() - EDITABLE_SLOT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    clean = _validated_changes(changes)
    try:
        for field, value in clean.items():
            setattr(slot, field, value)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(slot)
    return slot


def set_availability_override(db: Session, user: User, slot_id: str, is_available: bool) -> ParkingSlot:
    slot = get_owned_slot(db, user, slot_id)
    try:
        slot = availability.override(db, slot, is_available)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(slot)
    return slot


def delete_slot(db: Session, user: User, slot_id: str) -> None:
    """
    Delete an owned slot. Refused while a booking is pending, approved or paid. A slot
    with booking history is retired (deleted_at) instead of removed, so those bookings
    keep their slot.
    """
    slot = get_owned_slot(db, user, slot_id)
    try:
        slot = availability.lock_slot(db, slot.id)
        if availability.has_active_bookings(db, slot.id):
            raise ConflictError("Slot has active bookings")
        if db.query(Booking.id).filter(Booking.slot_id == slot.id).first() is not None:
            slot.deleted_at = utcnow()
            retired = True
        else:
            db.delete(slot)
            retired = False
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("delete_slot: slot=%s retired=%s", slot_id, retired)


def serialize_slot(slot: ParkingSlot) -> dict[str, Any]:
    return {
        "id": slot.id,
        "owner_id": slot.owner_id,
        "name": slot.name,
        "address": slot.address,
        "city": slot.city,
        "vehicle_type": slot.vehicle_type.value,
        "slot_type": slot.slot_type.value,
        "price_per_hour": str(slot.price_per_hour),
        "description": slot.description,
        "is_available": bool(slot.is_available),
    }
