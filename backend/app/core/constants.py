"""
Centralized constants for bookings, slots, owners and roles (Encapsulate What Changes).

Status values are closed enums stored as their string value. The booking transition
table lives here so the state machine and the housekeeping job share one definition.
"""
from enum import Enum


class Role(str, Enum):
    USER = "user"
    OWNER = "owner"
    ADMIN = "admin"


class Capability(str, Enum):
    REQUEST_BOOKINGS = "request_bookings"
    PAY_BOOKINGS = "pay_bookings"
    MANAGE_SLOTS = "manage_slots"
    DECIDE_BOOKINGS = "decide_bookings"
    FINALIZE_BOOKINGS = "finalize_bookings"
    FINALIZE_ANY_BOOKING = "finalize_any_booking"
    VIEW_OWNER_STATS = "view_owner_stats"
    REVIEW_OWNERS = "review_owners"
    VIEW_SYSTEM_STATS = "view_system_stats"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset({Capability.REQUEST_BOOKINGS, Capability.PAY_BOOKINGS}),
    Role.OWNER: frozenset(
        {
            Capability.MANAGE_SLOTS,
            Capability.DECIDE_BOOKINGS,
            Capability.FINALIZE_BOOKINGS,
            Capability.VIEW_OWNER_STATS,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Capability.REVIEW_OWNERS,
            Capability.VIEW_SYSTEM_STATS,
            Capability.MANAGE_USERS,
            Capability.FINALIZE_ANY_BOOKING,
        }
    ),
}


class OwnerStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VehicleType(str, Enum):
    TWO_WHEELER = "2-wheeler"
    FOUR_WHEELER = "4-wheeler"
    SUV = "suv"


class SlotType(str, Enum):
    COVERED = "covered"
    OPEN = "open"


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.PAID, BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.PAID: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# Not yet terminal: blocks slot deletion and manual availability overrides
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED, BookingStatus.PAID)

# Hold the slot for their interval: at most one per overlapping window
OCCUPYING_BOOKING_STATUSES = (BookingStatus.APPROVED, BookingStatus.PAID)

# Count towards revenue
REVENUE_BOOKING_STATUSES = (BookingStatus.PAID, BookingStatus.COMPLETED)


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# Scheduler job ids (must match ids used in main.py add_job)
BOOKING_HOUSEKEEPING_JOB_ID = "booking_housekeeping"

# Listing caps so responses stay bounded
NOTIFICATIONS_DEFAULT_LIMIT = 80
NOTIFICATIONS_MAX_LIMIT = 200
HOUSEKEEPING_BATCH_LIMIT = 200
