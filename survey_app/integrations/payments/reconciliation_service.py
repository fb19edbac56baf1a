# survey_app/integrations/payments/reconciliation_service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.booking.services.booking_lifecycle_service import (
    BookingLifecycleService,
)
from survey_app.common.time_utils import to_iso, utc_now
from survey_app.config.settings import AppSettings
from survey_app.domain.booking_status import BookingEvent, BookingStatus, PaymentPhase
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import SYSTEM_ACTOR, Booking
from survey_app.integrations.payments.payment_coordinator import PaymentCoordinator

logger = logging.getLogger(__name__)


class PaymentReconciliationService:
    """
    Sweep for payments whose outcome never reached us (client lost the
    network after paying).

    - asks the gateway whether the open order was paid
    - a paid order goes through PaymentCoordinator.confirm_captured_payment,
      which settles through the same idempotent path the client uses
    - with pending_expiry_hours > 0, unpaid PENDING bookings past the
      expiry fire PAYMENT_FAILED; AWAITING_PAYMENT is never expired
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        gateway,
        coordinator: PaymentCoordinator,
        repo: Optional[BookingRepository] = None,
        lifecycle: Optional[BookingLifecycleService] = None,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._coordinator = coordinator
        self._repo = repo or BookingRepository()
        self._lifecycle = lifecycle or BookingLifecycleService()

    def sweep(self, now: Optional[datetime] = None, *, limit: int = 100) -> Dict[str, Any]:
        now = now or utc_now()
        stale_before = now - timedelta(minutes=self._settings.stale_payment_minutes)

        candidates = self._repo.list_stale_payment_candidates(
            updated_before_iso=to_iso(stale_before),
            limit=limit,
        )

        healed = expired = errors = 0
        results: List[Dict[str, Any]] = []

        for booking in candidates:
            try:
                outcome = self._reconcile_one(booking, now)
            except BookingDomainError as e:
                errors += 1
                outcome = f"error:{e.code}"
                logger.warning(
                    "reconcile failed booking_id=%s: %s", booking.booking_id, e.message
                )

            if outcome == "healed":
                healed += 1
            elif outcome == "expired":
                expired += 1
            results.append({"booking_id": booking.booking_id, "result": outcome})

        summary = {
            "checked": len(candidates),
            "healed": healed,
            "expired": expired,
            "errors": errors,
            "results": results,
        }
        logger.info(
            "reconciliation checked=%s healed=%s expired=%s errors=%s",
            len(candidates),
            healed,
            expired,
            errors,
        )
        return summary

    # =================================================
    # Internal helpers
    # =================================================
    def _reconcile_one(self, booking: Booking, now: datetime) -> str:
        phase = (
            PaymentPhase.ADVANCE
            if booking.status is BookingStatus.PENDING
            else PaymentPhase.REMAINING
        )

        order_id = booking.payment.order_id_for(phase)
        if order_id and not booking.payment.is_paid(phase):
            payment_id = self._gateway.fetch_paid_payment(order_id)
            if payment_id:
                result = self._coordinator.confirm_captured_payment(
                    booking.booking_id,
                    phase,
                    order_id,
                    payment_id,
                )
                if result.success:
                    logger.info(
                        "reconciled paid order booking_id=%s phase=%s payment_id=%s",
                        booking.booking_id,
                        phase.value,
                        payment_id,
                    )
                    return "healed"
                return f"unverified:{result.error_code}"

        if phase is PaymentPhase.ADVANCE and self._is_expired(booking, now):
            self._lifecycle.transition(
                booking.booking_id,
                BookingEvent.PAYMENT_FAILED,
                SYSTEM_ACTOR,
                reason="advance payment not received in time",
                expected_version=booking.version,
            )
            return "expired"

        return "unpaid"

    def _is_expired(self, booking: Booking, now: datetime) -> bool:
        hours = self._settings.pending_expiry_hours
        if hours <= 0 or not booking.created_at:
            return False
        return booking.created_at < to_iso(now - timedelta(hours=hours))
