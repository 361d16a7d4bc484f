"""Booking request against a slot for the half-open interval [start_time, end_time).

Never deleted, only terminalized. status follows BOOKING_TRANSITIONS
(app.core.constants); writes go through app.services.booking_service.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import BookingStatus
from app.db.base import Base, new_id, str_enum


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_slot_status", "slot_id", "status"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("parking_slots.id"), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, nullable=False)  # hours, equals end_time - start_time
    base_amount = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(str_enum(BookingStatus, "booking_status"), nullable=False, default=BookingStatus.PENDING)
    payment_reference = Column(String(255), nullable=True)  # provider id (Stripe PaymentIntent)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)

    slot = relationship("ParkingSlot")
    user = relationship("User")
