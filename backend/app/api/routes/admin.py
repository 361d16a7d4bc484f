"""Admin and owner dashboards: statistics, admin accounts, account removal."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import require
from app.core.constants import Capability
from app.db.session import get_db
from app.models.user import User
from app.services import stats_service, user_service

router = APIRouter()


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: str
    password: str


@router.get("/owner/stats")
def owner_stats(
    db: Session = Depends(get_db),
    user: User = Depends(require(Capability.VIEW_OWNER_STATS)),
) -> dict[str, Any]:
    return stats_service.owner_stats(db, user)


@router.get("/admin/stats")
def system_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require(Capability.VIEW_SYSTEM_STATS)),
) -> dict[str, Any]:
    return stats_service.system_stats(db, admin)


@router.post("/admin/admins")
def create_admin(
    body: AdminCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require(Capability.MANAGE_USERS)),
) -> dict[str, Any]:
    new_admin = user_service.create_admin(db, admin, body.username, body.email, body.password)
    return {"message": "Admin user created successfully", "admin_id": new_admin.id}


@router.delete("/admin/users/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require(Capability.MANAGE_USERS)),
) -> dict[str, Any]:
    """Remove an unreferenced account; users with bookings or slots are refused (409)."""
    user_service.delete_user(db, admin, user_id)
    return {"ok": True, "user_id": user_id}
