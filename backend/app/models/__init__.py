from app.models.booking import Booking
from app.models.notification import Notification
from app.models.owner import Owner
from app.models.parking_slot import ParkingSlot
from app.models.user import User

__all__ = [
    "Booking",
    "Notification",
    "Owner",
    "ParkingSlot",
    "User",
]
