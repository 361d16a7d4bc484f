"""
Centralized error handling for booking/slot failures.
Domain exceptions plus a rule table mapping them to HTTP responses, so routes stay thin
and new error kinds are easy to add.
"""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

# ---------------------------------------------------------------------------
# Constants: user-facing messages
# ---------------------------------------------------------------------------

MSG_NOT_PERMITTED = "Not permitted"
MSG_SLOT_TAKEN = "Slot no longer available, please choose another"
MSG_PAYMENT_RETRY = "Payment could not be captured; the booking is still approved, please retry"


# ---------------------------------------------------------------------------
# Domain exceptions. Each carries a machine-readable kind and a public message.
# ---------------------------------------------------------------------------


class DomainError(Exception):
    kind = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class ValidationError(DomainError):
    """Malformed or out-of-range input; the caller can correct and resend."""

    kind = "validation_error"


class AuthenticationError(DomainError):
    kind = "authentication_error"


class AuthorizationError(DomainError):
    """Caller lacks role or ownership. Never reveals whether the resource exists."""

    kind = "not_permitted"

    def __init__(self, message: str = MSG_NOT_PERMITTED) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    kind = "not_found"


class StateError(DomainError):
    """Operation invalid for the current status; caller must refresh."""

    kind = "invalid_state"


class ConflictError(DomainError):
    """Availability race lost, or deletion blocked by active references."""

    kind = "conflict"


class PaymentError(DomainError):
    """External capture failed; booking left approved so the caller can retry."""

    kind = "payment_error"


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code, public detail or None to use exc.message).
# First match wins. AuthorizationError always answers with the generic message.
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_BAD_GATEWAY = 502

DOMAIN_ERROR_RULES: list[tuple[type[DomainError], int, str | None]] = [
    (ValidationError, STATUS_BAD_REQUEST, None),
    (AuthenticationError, STATUS_UNAUTHORIZED, None),
    (AuthorizationError, STATUS_FORBIDDEN, MSG_NOT_PERMITTED),
    (NotFoundError, STATUS_NOT_FOUND, None),
    (StateError, STATUS_CONFLICT, None),
    (ConflictError, STATUS_CONFLICT, None),
    (PaymentError, STATUS_BAD_GATEWAY, None),
]


def domain_error_to_http(exc: DomainError) -> tuple[int, dict[str, str]]:
    """
    Map a domain exception to (status_code, body).
    Unknown DomainError subclasses fall back to 400 with their own message.
    """
    for exc_type, status_code, detail in DOMAIN_ERROR_RULES:
        if isinstance(exc, exc_type):
            return status_code, {"error": exc.kind, "detail": detail or exc.message}
    return STATUS_BAD_REQUEST, {"error": exc.kind, "detail": exc.message}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code, body = domain_error_to_http(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == STATUS_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)
