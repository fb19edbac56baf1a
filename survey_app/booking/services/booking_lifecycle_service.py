# survey_app/booking/services/booking_lifecycle_service.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.common.time_utils import utc_now_iso
from survey_app.domain.booking_status import (
    PHASE_GATE,
    TRANSITIONS,
    ActorRole,
    BookingEvent,
    BookingStatus,
    PaymentPhase,
)
from survey_app.domain.errors import (
    ActorNotAllowed,
    AlreadyTerminal,
    BookingNotFound,
    Conflict,
    InvalidTransition,
    ValidationError,
)
from survey_app.domain.models import Actor, Booking, Report
from survey_app.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


# payment columns a transition may carry along with the status change
_PAYMENT_CHANGE_COLUMNS = frozenset(
    {
        "advance_paid",
        "advance_gateway_payment_id",
        "advance_paid_at",
        "remaining_paid",
        "remaining_gateway_payment_id",
        "remaining_paid_at",
    }
)

# lifecycle timestamp written when a status is entered
_ENTERED_AT_COLUMN: Dict[BookingStatus, str] = {
    BookingStatus.ASSIGNED: "assigned_at",
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.VISITED: "visited_at",
    BookingStatus.AWAITING_PAYMENT: "report_uploaded_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
    BookingStatus.REJECTED: "cancelled_at",
    BookingStatus.FAILED: "cancelled_at",
}

_DEFAULT_REASON: Dict[BookingEvent, str] = {
    BookingEvent.CANCEL: "cancelled",
    BookingEvent.REJECT: "rejected by vendor",
    BookingEvent.PAYMENT_FAILED: "payment failed",
}


class BookingLifecycleService:
    """
    The booking state machine. Every booking mutation goes through here.

    transition():
      - read, check (terminal / actor / ownership / predecessor), write
      - the write is a compare-and-swap on version: a concurrent writer
        makes this call fail with Conflict and leaves the row untouched
      - notifications are enqueued after the commit; their failure is
        logged and never rolls the state back
    """

    def __init__(
        self,
        *,
        repo: Optional[BookingRepository] = None,
        notifier: Optional[NotificationService] = None,
    ) -> None:
        self._repo = repo or BookingRepository()
        self._notifier = notifier or NotificationService()

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def get_booking(self, booking_id: str) -> Booking:
        booking = self._repo.fetch_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"booking {booking_id} not found")
        return booking

    # -------------------------------------------------
    # TRANSITION
    # -------------------------------------------------
    def transition(
        self,
        booking_id: str,
        event: BookingEvent,
        actor: Actor,
        *,
        reason: Optional[str] = None,
        report: Optional[Report] = None,
        payment_changes: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> Booking:
        booking = self.get_booking(booking_id)

        if booking.is_terminal:
            raise AlreadyTerminal(
                f"booking {booking_id} is {booking.status.value}",
                booking_id=booking_id,
                status=booking.status.value,
            )

        rule = TRANSITIONS[event]
        self._check_actor(booking, event, actor, rule.actors)

        if rule.sources is not None and booking.status not in rule.sources:
            raise InvalidTransition(
                f"{event.value} is not valid from {booking.status.value}",
                booking_id=booking_id,
                status=booking.status.value,
                event=event.value,
            )

        if expected_version is not None and expected_version != booking.version:
            raise Conflict(
                f"booking {booking_id} changed concurrently",
                booking_id=booking_id,
            )

        fields = self._build_fields(booking, event, rule.target, actor, reason, report)
        if payment_changes:
            unknown = set(payment_changes) - _PAYMENT_CHANGE_COLUMNS
            if unknown:
                raise ValueError(f"not a payment column: {sorted(unknown)}")
            fields.update(payment_changes)

        self._check_payment_invariants(booking, fields)

        updated = self._repo.compare_and_swap(
            booking_id=booking_id,
            expected_version=booking.version,
            fields=fields,
            history={
                "from_status": booking.status.value,
                "to_status": rule.target.value,
                "event": event.value,
                "actor_role": actor.role.value,
                "actor_id": actor.actor_id,
            },
        )

        logger.info(
            "transition booking_id=%s %s -> %s event=%s actor=%s",
            booking_id,
            booking.status.value,
            updated.status.value,
            event.value,
            actor.role.value,
        )

        self._emit(updated, event)
        return updated

    # -------------------------------------------------
    # Gateway order bookkeeping (no status change)
    # -------------------------------------------------
    def record_gateway_order(
        self,
        booking_id: str,
        phase: PaymentPhase,
        gateway_order_id: str,
        *,
        expected_version: int,
    ) -> Booking:
        """
        Persists the phase's gateway order id. Only succeeds while the
        column is still empty and nobody else wrote the booking since
        expected_version.
        """
        booking = self.get_booking(booking_id)

        if booking.is_terminal:
            raise AlreadyTerminal(
                f"booking {booking_id} is {booking.status.value}",
                booking_id=booking_id,
            )
        if booking.status not in PHASE_GATE[phase]:
            raise InvalidTransition(
                f"{phase.value} payment is not open in {booking.status.value}",
                booking_id=booking_id,
                status=booking.status.value,
            )

        column = f"{phase.value}_gateway_order_id"
        return self._repo.compare_and_swap(
            booking_id=booking_id,
            expected_version=expected_version,
            fields={column: gateway_order_id},
            require_null=(column,),
        )

    # =================================================
    # Internal helpers
    # =================================================
    def _check_actor(
        self,
        booking: Booking,
        event: BookingEvent,
        actor: Actor,
        allowed,
    ) -> None:
        if actor.role not in allowed:
            raise ActorNotAllowed(
                f"{actor.role.value} may not fire {event.value}",
                booking_id=booking.booking_id,
            )

        if actor.role is ActorRole.USER and actor.actor_id != booking.user_id:
            raise ActorNotAllowed("booking belongs to another user")

        if actor.role is ActorRole.VENDOR and actor.actor_id != booking.vendor_id:
            raise ActorNotAllowed("booking is assigned to another vendor")

    def _build_fields(
        self,
        booking: Booking,
        event: BookingEvent,
        target: BookingStatus,
        actor: Actor,
        reason: Optional[str],
        report: Optional[Report],
    ) -> Dict[str, Any]:
        now = utc_now_iso()
        fields: Dict[str, Any] = {"status": target.value}

        entered_col = _ENTERED_AT_COLUMN.get(target)
        if entered_col:
            fields[entered_col] = now

        if event in _DEFAULT_REASON:
            fields["cancellation_reason"] = (reason or "").strip() or _DEFAULT_REASON[event]
            fields["cancelled_by"] = actor.role.value

        if event is BookingEvent.REPORT_UPLOADED:
            if report is None:
                raise ValidationError("report is required for REPORT_UPLOADED")
            fields["report_json"] = json.dumps(
                {"water_found": bool(report.water_found), "findings": report.findings},
                ensure_ascii=False,
            )

        return fields

    def _check_payment_invariants(self, booking: Booking, fields: Dict[str, Any]) -> None:
        advance_paid = bool(fields.get("advance_paid", booking.payment.advance_paid))
        remaining_paid = bool(fields.get("remaining_paid", booking.payment.remaining_paid))

        # paid flags only move false -> true
        if booking.payment.advance_paid and not advance_paid:
            raise InvalidTransition("advance_paid cannot be reset")
        if booking.payment.remaining_paid and not remaining_paid:
            raise InvalidTransition("remaining_paid cannot be reset")

        if remaining_paid and not advance_paid:
            raise InvalidTransition("remaining payment before advance payment")

    def _emit(self, booking: Booking, event: BookingEvent) -> None:
        payload = {
            "booking_id": booking.booking_id,
            "status": booking.status.value,
            "event": event.value,
            "report_unlocked": booking.report_unlocked,
        }
        event_type = f"booking.{booking.status.value.lower()}"

        try:
            self._notifier.notify(
                "USER", booking.user_id, event_type, payload, booking_id=booking.booking_id
            )
            self._notifier.notify(
                "VENDOR", booking.vendor_id, event_type, payload, booking_id=booking.booking_id
            )
        except Exception as e:
            logger.warning("side effect emit failed booking_id=%s: %s", booking.booking_id, e)
