"""Account for every role (user, owner, admin). Owner business data lives in owners (1:1)."""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import ROLE_CAPABILITIES, Capability, Role
from app.db.base import Base, new_id, str_enum


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(64), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(str_enum(Role, "user_role"), nullable=False, default=Role.USER)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    owner = relationship("Owner", back_populates="user", uselist=False)

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())
