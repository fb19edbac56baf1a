# survey_app/booking/api/booking_api.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from survey_app.auth.current_actor import current_actor, require_user
from survey_app.booking.dtos import (
    ActiveBookingResponse,
    BookingDTO,
    BookingListResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    PaymentFailureRequest,
    PaymentOrderDTO,
    ReasonRequest,
    StatusHistoryDTO,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from survey_app.booking.services.booking_service import BookingService, NewBookingInput
from survey_app.booking.services.booking_view_service import (
    build_booking_view,
    build_order_view,
)
from survey_app.common.http_errors import to_http_exception
from survey_app.dependencies import get_booking_service, get_payment_coordinator
from survey_app.domain.booking_status import BookingStatus, PaymentPhase
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import Actor
from survey_app.integrations.payments.payment_coordinator import PaymentCoordinator

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


# ------------------------------------------------------------
# Create / read
# ------------------------------------------------------------
@router.post("", response_model=CreateBookingResponse, status_code=201)
def create_booking(
    req: CreateBookingRequest,
    actor: Actor = Depends(require_user),
    service: BookingService = Depends(get_booking_service),
):
    data = NewBookingInput(
        vendor_id=req.vendor_id,
        service_id=req.service_id,
        scheduled_date=req.scheduled_date,
        scheduled_time=req.scheduled_time,
        address=req.address.model_dump(exclude_none=True),
        notes=req.notes,
    )
    try:
        booking, order = service.create_booking(actor, data)
    except BookingDomainError as e:
        raise to_http_exception(e)

    return CreateBookingResponse(
        booking=build_booking_view(booking, actor),
        advance_order=build_order_view(order),
    )


@router.get("", response_model=BookingListResponse)
def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(require_user),
    service: BookingService = Depends(get_booking_service),
):
    bookings, total = service.list_bookings(
        actor, status=status, limit=limit, offset=offset
    )
    return BookingListResponse(
        total_count=total,
        limit=limit,
        offset=offset,
        bookings=[build_booking_view(b, actor) for b in bookings],
    )


@router.get("/active", response_model=ActiveBookingResponse)
def get_active_booking(
    actor: Actor = Depends(require_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_active_booking(actor)
    return ActiveBookingResponse(
        booking=build_booking_view(booking, actor) if booking else None
    )


@router.get("/{booking_id}", response_model=BookingDTO)
def get_booking(
    booking_id: str,
    actor: Actor = Depends(current_actor),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.get_booking(booking_id, actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


@router.get("/{booking_id}/history", response_model=List[StatusHistoryDTO])
def get_booking_history(
    booking_id: str,
    actor: Actor = Depends(current_actor),
    service: BookingService = Depends(get_booking_service),
):
    try:
        rows = service.list_status_history(booking_id, actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return [StatusHistoryDTO(**r) for r in rows]


@router.post("/{booking_id}/cancel", response_model=BookingDTO)
def cancel_booking(
    booking_id: str,
    req: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_user),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.cancel_booking(
            booking_id, actor, reason=req.reason if req else None
        )
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


# ------------------------------------------------------------
# Payments
# ------------------------------------------------------------
@router.post("/{booking_id}/payments/{phase}/initiate", response_model=PaymentOrderDTO)
def initiate_payment(
    booking_id: str,
    phase: PaymentPhase,
    actor: Actor = Depends(require_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """
    advance: resume a PENDING booking (returns the open order if any).
    remaining: open the balance order once the report is delivered.
    """
    try:
        order = coordinator.initiate_payment(booking_id, phase, actor=actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_order_view(order)


@router.post("/{booking_id}/payments/{phase}/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    booking_id: str,
    phase: PaymentPhase,
    req: VerifyPaymentRequest,
    actor: Actor = Depends(require_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    try:
        result = coordinator.verify_payment(
            booking_id,
            phase,
            req.gateway_order_id,
            req.gateway_payment_id,
            req.signature,
            actor=actor,
        )
    except BookingDomainError as e:
        raise to_http_exception(e)

    return VerifyPaymentResponse(
        success=result.success,
        error_code=result.error_code,
        already_processed=result.already_processed,
        booking=build_booking_view(result.booking, actor),
    )


@router.post("/{booking_id}/payments/{phase}/failure", response_model=VerifyPaymentResponse)
def report_payment_failure(
    booking_id: str,
    phase: PaymentPhase,
    req: PaymentFailureRequest,
    actor: Actor = Depends(require_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    try:
        result = coordinator.report_payment_failure(
            booking_id,
            phase,
            req.gateway_order_id,
            req.reason,
            actor=actor,
        )
    except BookingDomainError as e:
        raise to_http_exception(e)

    return VerifyPaymentResponse(
        success=result.success,
        error_code=result.error_code,
        already_processed=result.already_processed,
        booking=build_booking_view(result.booking, actor),
    )
