# survey_app/integrations/payments/refund_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from survey_app.domain.errors import (
    GatewayRejected,
    GatewayUnavailable,
    InvalidTransition,
    PaymentAttemptNotFound,
    ValidationError,
)
from survey_app.domain.models import Actor
from survey_app.integrations.payments.payment_attempt_repo import (
    REFUNDABLE_OUTCOMES,
    PaymentAttemptRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundResult:
    attempt_id: int
    booking_id: str
    gateway_payment_id: str
    gateway_refund_id: Optional[str]
    amount: int
    already_refunded: bool = False


class PaymentRefundService:
    """
    Admin refunds for captured payments that back no booking phase.

    - paid_after_terminal: money arrived after the booking was closed
    - duplicate_payment: a second payment for an already paid phase

    Each payment is refunded at most once; the outcome (refunded or
    refund_failed) is appended to payment_attempts next to the attempt
    that flagged it.
    """

    def __init__(
        self,
        *,
        gateway,
        attempts: Optional[PaymentAttemptRepository] = None,
    ) -> None:
        self._gateway = gateway
        self._attempts = attempts or PaymentAttemptRepository()

    def list_pending_refunds(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._attempts.list_pending_refunds(limit=limit)

    def refund_attempt(self, attempt_id: int, *, actor: Actor) -> RefundResult:
        attempt = self._attempts.fetch_attempt(attempt_id)
        if attempt is None:
            raise PaymentAttemptNotFound(
                f"payment attempt {attempt_id} not found", attempt_id=attempt_id
            )

        payment_id = attempt.get("gateway_payment_id")
        if attempt["outcome"] not in REFUNDABLE_OUTCOMES or not payment_id:
            raise InvalidTransition(
                f"payment attempt {attempt_id} ({attempt['outcome']}) is not refundable",
                attempt_id=attempt_id,
            )

        amount = attempt.get("amount")
        if not amount or amount <= 0:
            raise ValidationError(
                f"payment attempt {attempt_id} has no amount to refund",
                attempt_id=attempt_id,
            )

        existing = self._attempts.find_refund(payment_id)
        if existing is not None:
            return RefundResult(
                attempt_id=attempt_id,
                booking_id=attempt["booking_id"],
                gateway_payment_id=payment_id,
                gateway_refund_id=existing.get("gateway_refund_id"),
                amount=int(existing.get("amount") or amount),
                already_refunded=True,
            )

        try:
            refund = self._gateway.refund(
                payment_id,
                amount,
                notes={
                    "booking_id": attempt["booking_id"],
                    "attempt_id": str(attempt_id),
                    "reason": attempt["outcome"],
                },
            )
        except (GatewayRejected, GatewayUnavailable) as e:
            self._attempts.record(
                booking_id=attempt["booking_id"],
                phase=attempt["phase"],
                outcome="refund_failed",
                gateway_order_id=attempt.get("gateway_order_id"),
                gateway_payment_id=payment_id,
                amount=amount,
                error=e.message,
            )
            logger.warning(
                "refund failed attempt_id=%s payment_id=%s error=%s",
                attempt_id,
                payment_id,
                e.message,
            )
            raise

        self._attempts.record(
            booking_id=attempt["booking_id"],
            phase=attempt["phase"],
            outcome="refunded",
            gateway_order_id=attempt.get("gateway_order_id"),
            gateway_payment_id=payment_id,
            amount=refund.amount,
            gateway_refund_id=refund.refund_id,
        )
        logger.info(
            "refunded attempt_id=%s payment_id=%s refund_id=%s amount=%s by=%s",
            attempt_id,
            payment_id,
            refund.refund_id,
            refund.amount,
            actor.actor_id,
        )
        return RefundResult(
            attempt_id=attempt_id,
            booking_id=attempt["booking_id"],
            gateway_payment_id=payment_id,
            gateway_refund_id=refund.refund_id,
            amount=refund.amount,
        )
