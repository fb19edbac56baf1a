# survey_app/booking/api/vendor_booking_api.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from survey_app.auth.current_actor import require_vendor
from survey_app.booking.dtos import BookingDTO, ReasonRequest, ReportUploadRequest
from survey_app.booking.services.booking_service import BookingService
from survey_app.booking.services.booking_view_service import build_booking_view
from survey_app.common.http_errors import to_http_exception
from survey_app.dependencies import get_booking_service
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import Actor, Report

router = APIRouter(prefix="/api/vendor/bookings", tags=["vendor_bookings"])


@router.post("/{booking_id}/accept", response_model=BookingDTO)
def accept_booking(
    booking_id: str,
    actor: Actor = Depends(require_vendor),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.accept_booking(booking_id, actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


@router.post("/{booking_id}/reject", response_model=BookingDTO)
def reject_booking(
    booking_id: str,
    req: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_vendor),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.reject_booking(
            booking_id, actor, reason=req.reason if req else None
        )
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


@router.post("/{booking_id}/visit", response_model=BookingDTO)
def record_visit(
    booking_id: str,
    actor: Actor = Depends(require_vendor),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.record_visit(booking_id, actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)


@router.post("/{booking_id}/report", response_model=BookingDTO)
def upload_report(
    booking_id: str,
    req: ReportUploadRequest,
    actor: Actor = Depends(require_vendor),
    service: BookingService = Depends(get_booking_service),
):
    """Stores the findings; the booking moves to AWAITING_PAYMENT."""
    report = Report(water_found=req.water_found, findings=req.findings)
    try:
        booking = service.upload_report(booking_id, actor, report)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, actor)
