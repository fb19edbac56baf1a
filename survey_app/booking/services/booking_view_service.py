# survey_app/booking/services/booking_view_service.py
from __future__ import annotations

from typing import Optional

from survey_app.booking.dtos import (
    BookingDTO,
    PaymentOrderDTO,
    PaymentSummaryDTO,
    ReportDTO,
)
from survey_app.domain.booking_status import (
    REMAINING_PAYABLE_STATUSES,
    ActorRole,
    BookingStatus,
)
from survey_app.domain.models import Actor, Booking
from survey_app.integrations.payments.payment_coordinator import PaymentOrder


def payment_state_label(booking: Booking) -> str:
    """
    UI-facing payment label, derived from status and the two paid flags.

    ADVANCE_PENDING   -> waiting for the deposit
    REMAINING_PENDING -> report delivered, balance due (retry available)
    """
    p = booking.payment
    if p.remaining_paid:
        return "PAID_IN_FULL"
    if booking.is_terminal:
        return "ADVANCE_PAID" if p.advance_paid else "UNPAID"
    if booking.status is BookingStatus.PENDING:
        return "ADVANCE_PENDING"
    if booking.status in REMAINING_PAYABLE_STATUSES:
        return "REMAINING_PENDING"
    return "ADVANCE_PAID" if p.advance_paid else "UNPAID"


def build_report_view(booking: Booking, viewer: Actor) -> Optional[ReportDTO]:
    if booking.report is None:
        return None

    # the requesting user sees only the summary until the balance is paid
    if viewer.role is ActorRole.USER and not booking.report_unlocked:
        return ReportDTO(water_found=booking.report.water_found, locked=True)

    return ReportDTO(
        water_found=booking.report.water_found,
        locked=False,
        findings=booking.report.findings,
        uploaded_at=booking.report.uploaded_at,
    )


def build_booking_view(booking: Booking, viewer: Actor) -> BookingDTO:
    p = booking.payment
    return BookingDTO(
        booking_id=booking.booking_id,
        user_id=booking.user_id,
        vendor_id=booking.vendor_id,
        service_id=booking.service_id,
        status=booking.status.value,
        scheduled_date=booking.scheduled_date,
        scheduled_time=booking.scheduled_time,
        address=booking.address,
        notes=booking.notes,
        payment=PaymentSummaryDTO(
            currency=p.currency,
            base_service_fee=p.base_service_fee,
            travel_charges=p.travel_charges,
            gst=p.gst,
            total_amount=p.total_amount,
            advance_amount=p.advance_amount,
            remaining_amount=p.remaining_amount,
            advance_paid=p.advance_paid,
            remaining_paid=p.remaining_paid,
            advance_gateway_order_id=p.advance_gateway_order_id,
            remaining_gateway_order_id=p.remaining_gateway_order_id,
            payment_state=payment_state_label(booking),
        ),
        report=build_report_view(booking, viewer),
        cancellation_reason=booking.cancellation_reason,
        cancelled_by=booking.cancelled_by,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
        version=booking.version,
    )


def build_order_view(order: PaymentOrder) -> PaymentOrderDTO:
    return PaymentOrderDTO(
        booking_id=order.booking_id,
        phase=order.phase.value,
        gateway_order_id=order.gateway_order_id,
        amount=order.amount,
        currency=order.currency,
        key_id=order.key_id,
        reused=order.reused,
    )
