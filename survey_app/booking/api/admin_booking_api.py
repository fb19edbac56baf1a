# survey_app/booking/api/admin_booking_api.py
from __future__ import annotations

from typing import Callable, List, Optional

from fastapi import APIRouter, Depends

from survey_app.auth.current_actor import require_admin
from survey_app.booking.dtos import BookingDTO, PaymentAttemptDTO, ReasonRequest
from survey_app.booking.services.booking_service import BookingService
from survey_app.booking.services.booking_view_service import build_booking_view
from survey_app.common.http_errors import to_http_exception
from survey_app.dependencies import get_booking_service
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import Actor, Booking

router = APIRouter(prefix="/api/admin/bookings", tags=["admin_bookings"])


def _run(action: Callable[[], Booking], actor: Actor) -> BookingDTO:
    try:
        booking = action()
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


@router.post("/{booking_id}/approve", response_model=BookingDTO)
def approve_booking(
    booking_id: str,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return _run(lambda: service.approve_booking(booking_id, actor), actor)


@router.post("/{booking_id}/settle", response_model=BookingDTO)
def settle_booking(
    booking_id: str,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    """Vendor payout recorded outside this service; FINAL_SETTLEMENT."""
    return _run(lambda: service.settle_booking(booking_id, actor), actor)


@router.post("/{booking_id}/complete", response_model=BookingDTO)
def complete_booking(
    booking_id: str,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return _run(lambda: service.complete_booking(booking_id, actor), actor)


@router.post("/{booking_id}/cancel", response_model=BookingDTO)
def cancel_booking(
    booking_id: str,
    req: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    reason = req.reason if req else None
    return _run(lambda: service.cancel_booking(booking_id, actor, reason=reason), actor)


@router.get("/{booking_id}/payment-attempts", response_model=List[PaymentAttemptDTO])
def list_payment_attempts(
    booking_id: str,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    try:
        rows = service.list_payment_attempts(booking_id)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return [PaymentAttemptDTO(**r) for r in rows]
