# survey_app/booking/api/admin_refund_api.py
from __future__ import annotations

from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, Query

from survey_app.auth.current_actor import require_admin
from survey_app.booking.dtos import RefundCandidateDTO, RefundDTO
from survey_app.common.http_errors import to_http_exception
from survey_app.dependencies import get_refund_service
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import Actor
from survey_app.integrations.payments.refund_service import PaymentRefundService

router = APIRouter(prefix="/api/admin/refunds", tags=["admin_refunds"])


@router.get("", response_model=List[RefundCandidateDTO])
def list_pending_refunds(
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(require_admin),
    service: PaymentRefundService = Depends(get_refund_service),
):
    """Captured payments backing no booking phase, not yet refunded."""
    return [RefundCandidateDTO(**r) for r in service.list_pending_refunds(limit=limit)]


@router.post("/{attempt_id}", response_model=RefundDTO)
def refund_attempt(
    attempt_id: int,
    actor: Actor = Depends(require_admin),
    service: PaymentRefundService = Depends(get_refund_service),
):
    try:
        result = service.refund_attempt(attempt_id, actor=actor)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return RefundDTO(**asdict(result))
