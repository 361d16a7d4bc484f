"""Owner applications and admin review."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require
from app.core.constants import Capability
from app.db.session import get_db
from app.models.user import User
from app.services import owner_service

router = APIRouter()


class OwnerApplication(BaseModel):
    business_name: str = Field(..., max_length=255)
    address: str = Field(..., max_length=512)
    city: str = Field(..., max_length=128)
    phone: str = Field(..., max_length=32)


class OwnerStatusBody(BaseModel):
    status: str = Field(..., description="approved | rejected")


@router.post("/owners/apply")
def apply(
    body: OwnerApplication,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    owner = owner_service.apply_as_owner(db, user, body.model_dump())
    return owner_service.serialize_owner(owner)


@router.get("/owners/pending")
def pending_owners(
    db: Session = Depends(get_db),
    admin: User = Depends(require(Capability.REVIEW_OWNERS)),
) -> list[dict[str, Any]]:
    return [owner_service.serialize_owner(o) for o in owner_service.list_pending_owners(db, admin)]


@router.patch("/owners/{owner_id}/status")
def decide_owner(
    owner_id: str,
    body: OwnerStatusBody,
    db: Session = Depends(get_db),
    admin: User = Depends(require(Capability.REVIEW_OWNERS)),
) -> dict[str, Any]:
    owner = owner_service.decide_owner(db, admin, owner_id, body.status)
    return owner_service.serialize_owner(owner)
