# survey_app/domain/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


# -----------------------------------------------------
# Domain Errors
# -----------------------------------------------------
class BookingDomainError(Exception):
    code = "BOOKING_ERROR"

    def __init__(self, message: str = "", **extra: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(self.extra)
        return detail


class ValidationError(BookingDomainError):
    code = "VALIDATION_ERROR"


class BookingNotFound(BookingDomainError):
    code = "BOOKING_NOT_FOUND"


class PaymentAttemptNotFound(BookingDomainError):
    code = "PAYMENT_ATTEMPT_NOT_FOUND"


class ActorNotAllowed(BookingDomainError):
    code = "ACTOR_NOT_ALLOWED"


class InvalidTransition(BookingDomainError):
    code = "INVALID_TRANSITION"


class PhaseAlreadyPaid(InvalidTransition):
    """Resume found the stored gateway order already paid."""

    code = "PHASE_ALREADY_PAID"


class AlreadyTerminal(BookingDomainError):
    code = "ALREADY_TERMINAL"


class ActiveBookingExists(BookingDomainError):
    code = "ACTIVE_BOOKING_EXISTS"

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            "user already has an active booking",
            booking_id=booking_id,
        )
        self.booking_id = booking_id


class Conflict(BookingDomainError):
    """Optimistic-lock collision: re-read and retry the whole operation."""

    code = "CONFLICT"


class PaymentNotInitiated(BookingDomainError):
    code = "PAYMENT_NOT_INITIATED"


class GatewayUnavailable(BookingDomainError):
    code = "GATEWAY_UNAVAILABLE"

    def __init__(self, message: str = "", booking_id: Optional[str] = None) -> None:
        if booking_id:
            super().__init__(message, booking_id=booking_id)
        else:
            super().__init__(message)
        self.booking_id = booking_id


class GatewayRejected(BookingDomainError):
    code = "GATEWAY_REJECTED"


class FakePaymentsDisabled(BookingDomainError):
    code = "FAKE_PAYMENTS_DISABLED"
