"""
Parking slots: public search, owner inventory management.

Availability is not part of the slot edit body; the owner toggles it through
PATCH /slots/{id}/availability, which is refused while bookings are active.
"""
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import require
from app.core.constants import Capability
from app.db.session import get_db
from app.models.user import User
from app.services import slot_registry
from app.services.slot_registry import serialize_slot

router = APIRouter()


class SlotCreate(BaseModel):
    name: str
    address: str
    city: str
    vehicle_type: str = Field(..., description="2-wheeler | 4-wheeler | suv")
    slot_type: str = Field(..., description="covered | open")
    price_per_hour: Decimal
    description: str | None = None


class SlotUpdate(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    vehicle_type: str | None = None
    slot_type: str | None = None
    price_per_hour: Decimal | None = None
    description: str | None = None
    is_available: bool | None = Field(None, description="Rejected: use PATCH /slots/{id}/availability")


class AvailabilityBody(BaseModel):
    is_available: bool


@router.get("/slots")
def list_slots(
    db: Session = Depends(get_db),
    city: str | None = Query(None),
    vehicle_type: str | None = Query(None),
) -> list[dict[str, Any]]:
    """Slots bookable right now, optionally filtered by city and vehicle type."""
    return [serialize_slot(s) for s in slot_registry.list_available(db, city=city, vehicle_type=vehicle_type)]


@router.get("/slots/owner")
def list_my_slots(
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.MANAGE_SLOTS)),
) -> list[dict[str, Any]]:
    return [serialize_slot(s) for s in slot_registry.list_owner_slots(db, user)]


@router.get("/slots/{slot_id}")
def get_slot(slot_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    return serialize_slot(slot_registry.get_slot(db, slot_id))


@router.post("/slots")
def create_slot(
    body: SlotCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.MANAGE_SLOTS)),
) -> dict[str, Any]:
    return serialize_slot(slot_registry.create_slot(db, user, body.model_dump()))


@router.put("/slots/{slot_id}")
def update_slot(
    slot_id: str,
    body: SlotUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.MANAGE_SLOTS)),
) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    return serialize_slot(slot_registry.update_attributes(db, user, slot_id, changes))


@router.patch("/slots/{slot_id}/availability")
def set_availability(
    slot_id: str,
    body: AvailabilityBody,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.MANAGE_SLOTS)),
) -> dict[str, Any]:
    return serialize_slot(slot_registry.set_availability_override(db, user, slot_id, body.is_available))


@router.delete("/slots/{slot_id}")
def delete_slot(
    slot_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.MANAGE_SLOTS)),
) -> dict[str, str]:
    slot_registry.delete_slot(db, user, slot_id)
    return {"message": "Slot deleted successfully"}
