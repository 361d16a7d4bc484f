"""Owner business profile. Only approved owners may list slots or receive bookings."""
from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import OwnerStatus
from app.db.base import Base, new_id, str_enum


class Owner(Base):
    __tablename__ = "owners"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    business_name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=False, default="")
    city = Column(String(128), nullable=False, default="")
    phone = Column(String(32), nullable=False, default="")
    status = Column(str_enum(OwnerStatus, "owner_status"), nullable=False, default=OwnerStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="owner")
    slots = relationship("ParkingSlot", back_populates="owner")

    @property
    def is_approved(self) -> bool:
        return self.status == OwnerStatus.APPROVED
