"""
Bookings: user requests, owner decisions and finalization, payment capture.
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require
from app.core.constants import BookingStatus, Capability
from app.db.session import get_db
from app.models.user import User
from app.services import booking_service
from app.services.booking_service import serialize_booking
from app.services.payments import PaymentGateway, get_payment_gateway

router = APIRouter()


class BookingRequest(BaseModel):
    slot_id: str
    start_time: datetime
    end_time: datetime
    duration: int = Field(..., description="Hours; must equal end_time - start_time")


class DecisionBody(BaseModel):
    decision: str = Field(..., description="approved | rejected")


class FinalizeBody(BaseModel):
    status: str = Field(..., description="completed | cancelled")


class CaptureBody(BaseModel):
    booking_id: str


@router.post("/bookings")
def request_booking(
    body: BookingRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.REQUEST_BOOKINGS)),
) -> dict[str, Any]:
    booking = booking_service.request_booking(
        db, user, body.slot_id, body.start_time, body.end_time, body.duration
    )
    return serialize_booking(booking)


@router.get("/bookings/user")
def my_bookings(
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.REQUEST_BOOKINGS)),
) -> list[dict[str, Any]]:
    return [serialize_booking(b) for b in booking_service.list_user_bookings(db, user)]


@router.get("/bookings/owner")
def owner_bookings(
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.DECIDE_BOOKINGS)),
    status: str | None = Query(None),
) -> list[dict[str, Any]]:
    return [serialize_booking(b) for b in booking_service.list_owner_bookings(db, user, status)]


@router.get("/bookings/pending")
def pending_requests(
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.DECIDE_BOOKINGS)),
) -> list[dict[str, Any]]:
    """Pending requests on the caller's slots, newest first."""
    bookings = booking_service.list_owner_bookings(db, user, BookingStatus.PENDING)
    return [serialize_booking(b) for b in bookings]


@router.patch("/bookings/{booking_id}/decision")
def decide(
    booking_id: str,
    body: DecisionBody,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.DECIDE_BOOKINGS)),
) -> dict[str, Any]:
    return serialize_booking(booking_service.decide(db, user, booking_id, body.decision))


@router.patch("/bookings/{booking_id}/status")
def finalize(
    booking_id: str,
    body: FinalizeBody,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    """Complete or cancel an approved/paid booking (slot owner or admin)."""
    return serialize_booking(booking_service.finalize(db, booking_id, body.status, actor=user))


@router.post("/payments/capture")
def capture_payment(
    body: CaptureBody,
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.PAY_BOOKINGS)),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, Any]:
    charge = booking_service.capture_payment(db, user, body.booking_id, gateway)
    return {"provider_reference": charge.reference, "client_secret": charge.client_secret}
