"""Auth: register, login (Bearer token), current user."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.security import create_access_token
from app.db.session import get_db
from app.models.user import User
from app.services import user_service

router = APIRouter()


class RegisterBody(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    role: str = Field("user", pattern="^(user|owner)$")


class LoginBody(BaseModel):
    email: str
    password: str


@router.post("/auth/register")
def register(body: RegisterBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Sign up as a car owner (user) or slot owner (owner; profile starts pending)."""
    user = user_service.register(db, body.username, body.email, body.password, body.role)
    token = create_access_token(user.id, user.role.value)
    return {"token": token, "user": user_service.serialize_user(user)}


@router.post("/auth/login")
def login(body: LoginBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    user, token = user_service.login(db, body.email, body.password)
    return {"token": token, "user": user_service.serialize_user(user)}


@router.get("/auth/me")
def me(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return user_service.serialize_user(user)
