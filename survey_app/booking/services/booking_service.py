# survey_app/booking/services/booking_service.py
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.booking.services.active_booking_guard import ActiveBookingGuard
from survey_app.booking.services.booking_lifecycle_service import (
    BookingLifecycleService,
)
from survey_app.common.time_utils import utc_now_iso
from survey_app.domain.booking_status import (
    ActorRole,
    BookingEvent,
    BookingStatus,
    PaymentPhase,
)
from survey_app.domain.errors import ActorNotAllowed, BookingNotFound, ValidationError
from survey_app.domain.models import Actor, Booking, Report
from survey_app.domain.money import MIN_GATEWAY_ORDER_AMOUNT, split_payment
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)
from survey_app.integrations.payments.payment_coordinator import (
    PaymentCoordinator,
    PaymentOrder,
)
from survey_app.pricing.pricing_client import PricingClient

logger = logging.getLogger(__name__)


REQUIRED_ADDRESS_FIELDS = ("street", "city", "state", "pincode")


@dataclass
class NewBookingInput:
    vendor_id: str
    service_id: str
    scheduled_date: str  # YYYY-MM-DD
    scheduled_time: str  # HH:MM
    address: Dict[str, Any]
    notes: Optional[str] = None


class BookingService:
    """
    Use cases behind the booking routes.

    - creation: validate -> price -> 40/60 split -> guarded insert -> advance order
    - every later status change is a lifecycle transition
    - read access: users see their own bookings, vendors the ones
      assigned to them, admins everything
    """

    def __init__(
        self,
        *,
        repo: BookingRepository,
        guard: ActiveBookingGuard,
        lifecycle: BookingLifecycleService,
        coordinator: PaymentCoordinator,
        pricing: PricingClient,
        attempts: PaymentAttemptRepository,
        currency: str = "INR",
    ) -> None:
        self._repo = repo
        self._guard = guard
        self._lifecycle = lifecycle
        self._coordinator = coordinator
        self._pricing = pricing
        self._attempts = attempts
        self._currency = currency

    # -------------------------------------------------
    # Create
    # -------------------------------------------------
    def create_booking(
        self, actor: Actor, data: NewBookingInput
    ) -> Tuple[Booking, PaymentOrder]:
        if actor.role is not ActorRole.USER or not actor.actor_id:
            raise ActorNotAllowed("only users can create bookings")

        self._validate_new_booking(data)

        coords = data.address.get("coordinates") or {}
        charges = self._pricing.compute_charges(
            data.service_id,
            data.vendor_id,
            coords.get("lat"),
            coords.get("lng"),
        )
        split = split_payment(charges.total_amount)
        if split.advance_amount < MIN_GATEWAY_ORDER_AMOUNT:
            raise ValidationError(
                f"advance amount {split.advance_amount} is below the gateway minimum"
            )

        now = utc_now_iso()
        booking_id = f"bk_{uuid.uuid4().hex}"
        fields = {
            "booking_id": booking_id,
            "user_id": actor.actor_id,
            "vendor_id": data.vendor_id,
            "service_id": data.service_id,
            "status": BookingStatus.PENDING.value,
            "scheduled_date": data.scheduled_date,
            "scheduled_time": data.scheduled_time,
            "address_json": json.dumps(data.address, ensure_ascii=False),
            "notes": (data.notes or "").strip() or None,
            "base_service_fee": charges.base_service_fee,
            "travel_charges": charges.travel_charges,
            "gst": charges.gst,
            "total_amount": split.total_amount,
            "advance_amount": split.advance_amount,
            "remaining_amount": split.remaining_amount,
            "currency": self._currency,
            "created_at": now,
            "updated_at": now,
            "version": 1,
        }

        booking = self._guard.create_guarded(
            fields,
            history={
                "from_status": None,
                "to_status": BookingStatus.PENDING.value,
                "event": "CREATED",
                "actor_role": actor.role.value,
                "actor_id": actor.actor_id,
            },
        )

        # GatewayUnavailable leaves the booking PENDING; the user resumes
        # through the advance initiate route
        order = self._coordinator.initiate_payment(
            booking.booking_id, PaymentPhase.ADVANCE, actor=actor
        )
        return self._lifecycle.get_booking(booking.booking_id), order

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def get_booking(self, booking_id: str, actor: Actor) -> Booking:
        booking = self._lifecycle.get_booking(booking_id)
        self._check_read_access(booking, actor)
        return booking

    def get_active_booking(self, actor: Actor) -> Optional[Booking]:
        return self._repo.find_active_for_user(actor.actor_id)

    def list_bookings(
        self,
        actor: Actor,
        *,
        status: Optional[BookingStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Booking], int]:
        return self._repo.list_for_user(
            actor.actor_id, status=status, limit=limit, offset=offset
        )

    def list_status_history(self, booking_id: str, actor: Actor) -> List[Dict[str, Any]]:
        self.get_booking(booking_id, actor)
        return self._repo.list_status_history(booking_id)

    def list_payment_attempts(self, booking_id: str) -> List[Dict[str, Any]]:
        if self._repo.fetch_booking(booking_id) is None:
            raise BookingNotFound(f"booking {booking_id} not found")
        return self._attempts.list_by_booking(booking_id)

    # -------------------------------------------------
    # User
    # -------------------------------------------------
    def cancel_booking(
        self, booking_id: str, actor: Actor, reason: Optional[str] = None
    ) -> Booking:
        return self._lifecycle.transition(
            booking_id, BookingEvent.CANCEL, actor, reason=reason
        )

    # -------------------------------------------------
    # Vendor
    # -------------------------------------------------
    def accept_booking(self, booking_id: str, actor: Actor) -> Booking:
        return self._lifecycle.transition(booking_id, BookingEvent.VENDOR_ACCEPTED, actor)

    def reject_booking(
        self, booking_id: str, actor: Actor, reason: Optional[str] = None
    ) -> Booking:
        return self._lifecycle.transition(
            booking_id, BookingEvent.REJECT, actor, reason=reason
        )

    def record_visit(self, booking_id: str, actor: Actor) -> Booking:
        return self._lifecycle.transition(booking_id, BookingEvent.VISIT_RECORDED, actor)

    def upload_report(self, booking_id: str, actor: Actor, report: Report) -> Booking:
        return self._lifecycle.transition(
            booking_id, BookingEvent.REPORT_UPLOADED, actor, report=report
        )

    # -------------------------------------------------
    # Admin
    # -------------------------------------------------
    def approve_booking(self, booking_id: str, actor: Actor) -> Booking:
        return self._lifecycle.transition(booking_id, BookingEvent.ADMIN_APPROVED, actor)

    def settle_booking(self, booking_id: str, actor: Actor) -> Booking:
        return self._lifecycle.transition(
            booking_id, BookingEvent.SETTLEMENT_PROCESSED, actor
        )

    def complete_booking(self, booking_id: str, actor: Actor) -> Booking:
        return self._lifecycle.transition(
            booking_id, BookingEvent.BOOKING_COMPLETED, actor
        )

    # =================================================
    # Internal helpers
    # =================================================
    def _validate_new_booking(self, data: NewBookingInput) -> None:
        if not (data.vendor_id or "").strip():
            raise ValidationError("vendor_id is required")
        if not (data.service_id or "").strip():
            raise ValidationError("service_id is required")

        try:
            datetime.strptime(data.scheduled_date, "%Y-%m-%d")
        except (TypeError, ValueError):
            raise ValidationError("scheduled_date must be YYYY-MM-DD")
        try:
            datetime.strptime(data.scheduled_time, "%H:%M")
        except (TypeError, ValueError):
            raise ValidationError("scheduled_time must be HH:MM")

        if not isinstance(data.address, dict):
            raise ValidationError("address is required")
        missing = [
            f for f in REQUIRED_ADDRESS_FIELDS if not str(data.address.get(f) or "").strip()
        ]
        if missing:
            raise ValidationError(
                f"address is missing: {', '.join(missing)}", missing=missing
            )

    def _check_read_access(self, booking: Booking, actor: Actor) -> None:
        if actor.role is ActorRole.ADMIN:
            return
        if actor.role is ActorRole.USER and actor.actor_id == booking.user_id:
            return
        if actor.role is ActorRole.VENDOR and actor.actor_id == booking.vendor_id:
            return
        # not yours: same answer as a missing booking
        raise BookingNotFound(f"booking {booking.booking_id} not found")
