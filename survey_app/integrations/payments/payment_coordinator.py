# survey_app/integrations/payments/payment_coordinator.py
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from survey_app.booking.services.booking_lifecycle_service import (
    BookingLifecycleService,
)
from survey_app.common.time_utils import utc_now_iso
from survey_app.config.settings import AppSettings
from survey_app.domain.booking_status import (
    PHASE_CONFIRM_EVENT,
    PHASE_GATE,
    ActorRole,
    BookingEvent,
    BookingStatus,
    PaymentPhase,
)
from survey_app.domain.errors import (
    ActorNotAllowed,
    AlreadyTerminal,
    Conflict,
    FakePaymentsDisabled,
    GatewayRejected,
    GatewayUnavailable,
    InvalidTransition,
    PaymentNotInitiated,
    PhaseAlreadyPaid,
)
from survey_app.domain.models import SYSTEM_ACTOR, Actor, Booking
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)

logger = logging.getLogger(__name__)

_RECEIPT_PREFIX = {PaymentPhase.ADVANCE: "adv", PaymentPhase.REMAINING: "rem"}


def order_receipt(booking_id: str, phase: PaymentPhase) -> str:
    """
    Idempotency key for a phase's gateway order, sent as the Razorpay
    receipt (max 40 chars). Same (booking, phase) -> same receipt.
    """
    digest = hashlib.sha256(f"{booking_id}:{phase.value}".encode("utf-8")).hexdigest()
    return f"{_RECEIPT_PREFIX[phase]}_{digest[:32]}"


@dataclass(frozen=True)
class PaymentOrder:
    booking_id: str
    phase: PaymentPhase
    gateway_order_id: str
    amount: int
    currency: str
    key_id: str = ""
    reused: bool = False


@dataclass
class PaymentVerificationResult:
    """
    Outcome of a verify / failure report. A failed payment is a result,
    not an exception.
    """

    success: bool
    booking: Booking
    error_code: Optional[str] = None
    already_processed: bool = False


class PaymentCoordinator:
    """
    Drives the advance / remaining payment phases:

      initiate -> (client pays or abandons) -> verify -> commit or roll back

    - initiate is idempotent per (booking, phase): an open order is reused
    - verify is idempotent per payment id
    - a failed advance cancels the booking, a failed remaining payment
      leaves it in AWAITING_PAYMENT
    - every gateway interaction is recorded in payment_attempts
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        gateway,
        lifecycle: Optional[BookingLifecycleService] = None,
        attempts: Optional[PaymentAttemptRepository] = None,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._lifecycle = lifecycle or BookingLifecycleService()
        self._attempts = attempts or PaymentAttemptRepository()

    # -------------------------------------------------
    # Initiate
    # -------------------------------------------------
    def initiate_payment(
        self,
        booking_id: str,
        phase: PaymentPhase,
        *,
        actor: Optional[Actor] = None,
    ) -> PaymentOrder:
        booking = self._lifecycle.get_booking(booking_id)
        self._check_owner(booking, actor)
        self._check_phase_open(booking, phase)

        amount = booking.payment.amount_for(phase)
        currency = booking.payment.currency

        # abandon -> resume: hand back the stored order while it is still open
        existing_order_id = booking.payment.order_id_for(phase)
        if existing_order_id:
            status = self._fetch_order_status(booking_id, phase, existing_order_id)
            if status == "paid":
                self._settle_paid_order(booking, phase, existing_order_id)
            self._attempts.record(
                booking_id=booking_id,
                phase=phase.value,
                outcome="order_reused",
                gateway_order_id=existing_order_id,
                amount=amount,
            )
            return self._to_order(booking_id, phase, existing_order_id, amount, currency, reused=True)

        order = self._create_order_with_retry(booking_id, phase, amount, currency)

        try:
            self._lifecycle.record_gateway_order(
                booking_id,
                phase,
                order.order_id,
                expected_version=booking.version,
            )
        except Conflict:
            # a concurrent initiate may have stored the same (idempotent) order
            current = self._lifecycle.get_booking(booking_id)
            stored = current.payment.order_id_for(phase)
            if stored is None or current.payment.is_paid(phase):
                raise
            self._check_phase_open(current, phase)
            return self._to_order(booking_id, phase, stored, amount, currency, reused=True)

        self._attempts.record(
            booking_id=booking_id,
            phase=phase.value,
            outcome="order_created",
            gateway_order_id=order.order_id,
            amount=amount,
        )
        return self._to_order(booking_id, phase, order.order_id, amount, currency)

    # -------------------------------------------------
    # Verify
    # -------------------------------------------------
    def verify_payment(
        self,
        booking_id: str,
        phase: PaymentPhase,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        *,
        actor: Optional[Actor] = None,
    ) -> PaymentVerificationResult:
        booking = self._lifecycle.get_booking(booking_id)
        self._check_owner(booking, actor)
        stored_order_id = self._require_order(booking, phase)

        # signature is always recomputed from the stored order id
        signature_ok = gateway_order_id == stored_order_id and self._gateway.verify_signature(
            stored_order_id, gateway_payment_id, signature
        )
        return self._settle(
            booking, phase, gateway_order_id, gateway_payment_id, signature_ok
        )

    def confirm_captured_payment(
        self,
        booking_id: str,
        phase: PaymentPhase,
        gateway_order_id: str,
        gateway_payment_id: str,
    ) -> PaymentVerificationResult:
        """
        Server-side confirmation for a payment read back from Razorpay
        (webhook, reconciliation sweep, resume of a paid order). There is
        no client signature; the order id must still match the stored one.
        """
        booking = self._lifecycle.get_booking(booking_id)
        stored_order_id = self._require_order(booking, phase)
        return self._settle(
            booking,
            phase,
            gateway_order_id,
            gateway_payment_id,
            gateway_order_id == stored_order_id,
        )

    def _settle(
        self,
        booking: Booking,
        phase: PaymentPhase,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature_ok: bool,
    ) -> PaymentVerificationResult:
        booking_id = booking.booking_id
        stored_order_id = booking.payment.order_id_for(phase)

        if booking.payment.is_paid(phase):
            return self._verify_already_paid(
                booking, phase, gateway_payment_id, signature_ok
            )

        if not signature_ok:
            self._attempts.record(
                booking_id=booking_id,
                phase=phase.value,
                outcome="signature_mismatch",
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                error="signature mismatch",
            )
            logger.warning(
                "signature mismatch booking_id=%s phase=%s order_id=%s",
                booking_id,
                phase.value,
                gateway_order_id,
            )
            updated = self._fail_phase(booking, phase, "signature mismatch")
            return PaymentVerificationResult(
                success=False,
                booking=updated,
                error_code="SIGNATURE_MISMATCH",
            )

        if booking.is_terminal:
            # money arrived for a booking that was closed meanwhile
            self._attempts.record(
                booking_id=booking_id,
                phase=phase.value,
                outcome="paid_after_terminal",
                gateway_order_id=stored_order_id,
                gateway_payment_id=gateway_payment_id,
                amount=booking.payment.amount_for(phase),
                error=f"booking is {booking.status.value}",
            )
            logger.warning(
                "payment after terminal booking_id=%s status=%s payment_id=%s",
                booking_id,
                booking.status.value,
                gateway_payment_id,
            )
            raise AlreadyTerminal(
                f"booking {booking_id} is {booking.status.value}",
                booking_id=booking_id,
                status=booking.status.value,
            )

        return self._confirm_phase(booking, phase, gateway_payment_id)

    # -------------------------------------------------
    # Client-reported failure
    # -------------------------------------------------
    def report_payment_failure(
        self,
        booking_id: str,
        phase: PaymentPhase,
        gateway_order_id: Optional[str] = None,
        reason: Optional[str] = None,
        *,
        actor: Optional[Actor] = None,
    ) -> PaymentVerificationResult:
        booking = self._lifecycle.get_booking(booking_id)
        self._check_owner(booking, actor)
        stored_order_id = self._require_order(booking, phase)

        if booking.payment.is_paid(phase):
            # a late failure event for a phase that was paid anyway
            return PaymentVerificationResult(
                success=True,
                booking=booking,
                already_processed=True,
            )

        reason = (reason or "").strip() or "payment failed at gateway"
        self._attempts.record(
            booking_id=booking_id,
            phase=phase.value,
            outcome="gateway_failure",
            gateway_order_id=gateway_order_id or stored_order_id,
            error=reason,
        )
        logger.info(
            "payment failure reported booking_id=%s phase=%s reason=%s",
            booking_id,
            phase.value,
            reason,
        )

        updated = self._fail_phase(booking, phase, reason)
        return PaymentVerificationResult(
            success=False,
            booking=updated,
            error_code="PAYMENT_FAILED",
        )

    # -------------------------------------------------
    # Test-mode bypass
    # -------------------------------------------------
    def fake_advance_payment(self, booking_id: str) -> Booking:
        if not self._settings.fake_payments_enabled:
            raise FakePaymentsDisabled("fake payments are disabled")

        booking = self._lifecycle.get_booking(booking_id)
        if booking.payment.advance_paid:
            return booking

        fake_payment_id = f"fake_pay_{booking_id}"
        updated = self._lifecycle.transition(
            booking_id,
            BookingEvent.ADVANCE_CONFIRMED,
            SYSTEM_ACTOR,
            payment_changes={
                "advance_paid": 1,
                "advance_gateway_payment_id": fake_payment_id,
                "advance_paid_at": utc_now_iso(),
            },
            expected_version=booking.version,
        )
        self._attempts.record(
            booking_id=booking_id,
            phase=PaymentPhase.ADVANCE.value,
            outcome="verified",
            gateway_payment_id=fake_payment_id,
            amount=booking.payment.advance_amount,
            error="fake payment (test mode)",
        )
        logger.warning("fake advance payment applied booking_id=%s", booking_id)
        return updated

    # =================================================
    # Internal helpers
    # =================================================
    def _check_owner(self, booking: Booking, actor: Optional[Actor]) -> None:
        if actor is None or actor.role in (ActorRole.ADMIN, ActorRole.SYSTEM):
            return
        if actor.role is ActorRole.USER and actor.actor_id == booking.user_id:
            return
        raise ActorNotAllowed("only the booking owner can pay for it")

    def _check_phase_open(self, booking: Booking, phase: PaymentPhase) -> None:
        if booking.is_terminal:
            raise AlreadyTerminal(
                f"booking {booking.booking_id} is {booking.status.value}",
                booking_id=booking.booking_id,
                status=booking.status.value,
            )
        if booking.payment.is_paid(phase):
            raise InvalidTransition(
                f"{phase.value} payment already completed",
                booking_id=booking.booking_id,
            )
        if booking.status not in PHASE_GATE[phase]:
            raise InvalidTransition(
                f"{phase.value} payment is not open in {booking.status.value}",
                booking_id=booking.booking_id,
                status=booking.status.value,
            )
        if phase is PaymentPhase.REMAINING and not booking.payment.advance_paid:
            raise InvalidTransition(
                "advance payment must be completed first",
                booking_id=booking.booking_id,
            )

    def _require_order(self, booking: Booking, phase: PaymentPhase) -> str:
        stored_order_id = booking.payment.order_id_for(phase)
        if not stored_order_id:
            raise PaymentNotInitiated(
                f"no {phase.value} order for booking {booking.booking_id}",
                booking_id=booking.booking_id,
            )
        return stored_order_id

    def _fetch_order_status(
        self, booking_id: str, phase: PaymentPhase, order_id: str
    ) -> str:
        try:
            return self._gateway.fetch_order(order_id).status
        except (GatewayUnavailable, GatewayRejected) as e:
            self._attempts.record(
                booking_id=booking_id,
                phase=phase.value,
                outcome="gateway_error",
                gateway_order_id=order_id,
                error=f"order status check: {e.message}",
            )
            if isinstance(e, GatewayUnavailable):
                raise GatewayUnavailable(e.message, booking_id=booking_id)
            raise

    def _settle_paid_order(
        self, booking: Booking, phase: PaymentPhase, order_id: str
    ) -> None:
        """
        The stored order was paid but the confirmation never reached us.
        Settle it from the gateway's own record, then refuse to hand the
        order out again.
        """
        payment_id = self._gateway.fetch_paid_payment(order_id)
        self._attempts.record(
            booking_id=booking.booking_id,
            phase=phase.value,
            outcome="order_already_paid",
            gateway_order_id=order_id,
            gateway_payment_id=payment_id,
            amount=booking.payment.amount_for(phase),
        )
        logger.info(
            "resume found a paid order booking_id=%s phase=%s payment_id=%s",
            booking.booking_id,
            phase.value,
            payment_id,
        )
        confirmed = False
        if payment_id:
            confirmed = self.confirm_captured_payment(
                booking.booking_id, phase, order_id, payment_id
            ).success

        raise PhaseAlreadyPaid(
            f"{phase.value} order {order_id} is already paid",
            booking_id=booking.booking_id,
            gateway_order_id=order_id,
            confirmed=confirmed,
        )

    def _create_order_with_retry(
        self,
        booking_id: str,
        phase: PaymentPhase,
        amount: int,
        currency: str,
    ):
        idempotency_key = order_receipt(booking_id, phase)
        notes = {"booking_id": booking_id, "phase": phase.value}
        attempts = max(0, self._settings.gateway_max_retries) + 1
        last_error: Optional[GatewayUnavailable] = None

        for n in range(1, attempts + 1):
            try:
                return self._gateway.create_order(
                    amount, currency, idempotency_key, notes=notes
                )
            except GatewayUnavailable as e:
                last_error = e
                self._attempts.record(
                    booking_id=booking_id,
                    phase=phase.value,
                    outcome="gateway_error",
                    amount=amount,
                    error=f"try {n}/{attempts}: {e.message}",
                )
                logger.warning(
                    "order creation failed booking_id=%s phase=%s try=%s/%s: %s",
                    booking_id,
                    phase.value,
                    n,
                    attempts,
                    e.message,
                )
            except GatewayRejected as e:
                self._attempts.record(
                    booking_id=booking_id,
                    phase=phase.value,
                    outcome="gateway_error",
                    amount=amount,
                    error=e.message,
                )
                raise

        raise GatewayUnavailable(
            last_error.message if last_error else "payment gateway unavailable",
            booking_id=booking_id,
        )

    def _verify_already_paid(
        self,
        booking: Booking,
        phase: PaymentPhase,
        gateway_payment_id: str,
        signature_ok: bool,
    ) -> PaymentVerificationResult:
        if not signature_ok:
            return PaymentVerificationResult(
                success=False,
                booking=booking,
                error_code="SIGNATURE_MISMATCH",
            )

        if booking.payment.payment_id_for(phase) == gateway_payment_id:
            return PaymentVerificationResult(
                success=True,
                booking=booking,
                already_processed=True,
            )

        self._attempts.record(
            booking_id=booking.booking_id,
            phase=phase.value,
            outcome="duplicate_payment",
            gateway_order_id=booking.payment.order_id_for(phase),
            gateway_payment_id=gateway_payment_id,
            amount=booking.payment.amount_for(phase),
            error="phase already paid with another payment id",
        )
        logger.warning(
            "duplicate payment booking_id=%s phase=%s payment_id=%s",
            booking.booking_id,
            phase.value,
            gateway_payment_id,
        )
        return PaymentVerificationResult(
            success=False,
            booking=booking,
            error_code="DUPLICATE_PAYMENT",
        )

    def _confirm_phase(
        self,
        booking: Booking,
        phase: PaymentPhase,
        gateway_payment_id: str,
    ) -> PaymentVerificationResult:
        try:
            updated = self._lifecycle.transition(
                booking.booking_id,
                PHASE_CONFIRM_EVENT[phase],
                SYSTEM_ACTOR,
                payment_changes={
                    f"{phase.value}_paid": 1,
                    f"{phase.value}_gateway_payment_id": gateway_payment_id,
                    f"{phase.value}_paid_at": utc_now_iso(),
                },
                expected_version=booking.version,
            )
        except Conflict:
            # a concurrent verify with the same payment may have won
            current = self._lifecycle.get_booking(booking.booking_id)
            if (
                current.payment.is_paid(phase)
                and current.payment.payment_id_for(phase) == gateway_payment_id
            ):
                return PaymentVerificationResult(
                    success=True, booking=current, already_processed=True
                )
            raise

        self._attempts.record(
            booking_id=booking.booking_id,
            phase=phase.value,
            outcome="verified",
            gateway_order_id=booking.payment.order_id_for(phase),
            gateway_payment_id=gateway_payment_id,
            amount=booking.payment.amount_for(phase),
        )
        return PaymentVerificationResult(success=True, booking=updated)

    def _fail_phase(self, booking: Booking, phase: PaymentPhase, reason: str) -> Booking:
        """
        Advance failure cancels the booking. Remaining failure changes
        nothing: the work is done and the user can retry.
        """
        if booking.is_terminal or phase is PaymentPhase.REMAINING:
            return booking
        if booking.status is not BookingStatus.PENDING:
            return booking

        return self._lifecycle.transition(
            booking.booking_id,
            BookingEvent.CANCEL,
            SYSTEM_ACTOR,
            reason=f"advance payment failed: {reason}",
            expected_version=booking.version,
        )

    def _to_order(
        self,
        booking_id: str,
        phase: PaymentPhase,
        order_id: str,
        amount: int,
        currency: str,
        *,
        reused: bool = False,
    ) -> PaymentOrder:
        return PaymentOrder(
            booking_id=booking_id,
            phase=phase,
            gateway_order_id=order_id,
            amount=amount,
            currency=currency,
            key_id=self._settings.razorpay_key_id,
            reused=reused,
        )
