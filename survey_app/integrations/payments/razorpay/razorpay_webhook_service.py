# survey_app/integrations/payments/razorpay/razorpay_webhook_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.domain.errors import AlreadyTerminal
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)
from survey_app.integrations.payments.payment_coordinator import PaymentCoordinator

logger = logging.getLogger(__name__)


class RazorpayWebhookService:
    """
    Razorpay Webhook Service

    Responsibilities:
      - interpret the (already signature-checked) event
      - locate the booking by gateway order id
      - hand captured payments to PaymentCoordinator.confirm_captured_payment

    payment.failed is only recorded: the client report or the
    reconciliation sweep decides about rollback.
    """

    def __init__(
        self,
        *,
        coordinator: PaymentCoordinator,
        repo: Optional[BookingRepository] = None,
        attempts: Optional[PaymentAttemptRepository] = None,
    ) -> None:
        self._coordinator = coordinator
        self._repo = repo or BookingRepository()
        self._attempts = attempts or PaymentAttemptRepository()

    def handle_event(self, event: Dict[str, Any]) -> str:
        event_type = event.get("event")
        payload = event.get("payload") or {}
        payment = (payload.get("payment") or {}).get("entity") or {}
        order = (payload.get("order") or {}).get("entity") or {}

        order_id = payment.get("order_id") or order.get("id")
        payment_id = payment.get("id")
        if not isinstance(order_id, str) or not order_id:
            return "ignored"

        found = self._repo.fetch_by_gateway_order(order_id)
        if not found:
            logger.info("webhook for unknown order_id=%s event=%s", order_id, event_type)
            return "ignored"
        booking, phase = found

        if event_type in ("payment.captured", "order.paid"):
            if not isinstance(payment_id, str) or not payment_id:
                return "ignored"
            try:
                result = self._coordinator.confirm_captured_payment(
                    booking.booking_id,
                    phase,
                    order_id,
                    payment_id,
                )
            except AlreadyTerminal:
                return "paid_after_terminal"

            if result.already_processed:
                return "already_processed"
            return "verified" if result.success else f"unverified:{result.error_code}"

        if event_type == "payment.failed":
            self._attempts.record(
                booking_id=booking.booking_id,
                phase=phase.value,
                outcome="gateway_failure",
                gateway_order_id=order_id,
                gateway_payment_id=payment_id,
                error=payment.get("error_description") or "payment.failed webhook",
            )
            return "recorded"

        return "ignored"
