from app.services.booking_service import capture_payment, decide, finalize, request_booking
from app.services.slot_registry import create_slot, delete_slot, list_available, update_attributes

__all__ = [
    "capture_payment",
    "decide",
    "finalize",
    "request_booking",
    "create_slot",
    "delete_slot",
    "list_available",
    "update_attributes",
]
