"""Parking slot listing.

is_available and occupancy_version are written only by app.services.availability:
is_available = no approved/paid booking of this slot covers the current time (or a
manual override while no booking is active); occupancy_version is the compare-and-swap
token bumped on every occupancy write. deleted_at marks a retired slot kept for booking
history; retired slots are hidden from listings.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import SlotType, VehicleType
from app.db.base import Base, new_id, str_enum


class ParkingSlot(Base):
    __tablename__ = "parking_slots"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("owners.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=False)
    city = Column(String(128), nullable=False, index=True)
    vehicle_type = Column(str_enum(VehicleType, "vehicle_type"), nullable=False)
    slot_type = Column(str_enum(SlotType, "slot_type"), nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    occupancy_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("Owner", back_populates="slots")
