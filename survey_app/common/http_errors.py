# survey_app/common/http_errors.py
from __future__ import annotations

from fastapi import HTTPException

from survey_app.domain.errors import (
    ActiveBookingExists,
    ActorNotAllowed,
    AlreadyTerminal,
    BookingDomainError,
    BookingNotFound,
    Conflict,
    FakePaymentsDisabled,
    GatewayRejected,
    GatewayUnavailable,
    InvalidTransition,
    PaymentAttemptNotFound,
    PaymentNotInitiated,
    ValidationError,
)

_STATUS_BY_ERROR = {
    ValidationError: 400,
    BookingNotFound: 404,
    PaymentAttemptNotFound: 404,
    ActorNotAllowed: 403,
    InvalidTransition: 409,
    AlreadyTerminal: 409,
    ActiveBookingExists: 409,
    Conflict: 409,
    PaymentNotInitiated: 409,
    GatewayUnavailable: 503,
    GatewayRejected: 502,
}


def to_http_exception(e: BookingDomainError) -> HTTPException:
    """Domain error -> HTTPException(detail={code, message, ...})."""
    if isinstance(e, FakePaymentsDisabled):
        # same answer as a route that does not exist
        return HTTPException(status_code=404, detail="Not Found")

    status_code = 400
    for cls in type(e).__mro__:
        if cls in _STATUS_BY_ERROR:
            status_code = _STATUS_BY_ERROR[cls]
            break
    return HTTPException(status_code=status_code, detail=e.to_detail())
