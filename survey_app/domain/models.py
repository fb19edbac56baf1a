# survey_app/domain/models.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from survey_app.domain.booking_status import (
    ActorRole,
    BookingStatus,
    PaymentPhase,
    is_terminal,
)


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    actor_id: Optional[str] = None


SYSTEM_ACTOR = Actor(role=ActorRole.SYSTEM, actor_id="payment-coordinator")


@dataclass
class Payment:
    base_service_fee: int
    travel_charges: int
    gst: int
    total_amount: int
    advance_amount: int
    remaining_amount: int
    currency: str = "INR"
    advance_paid: bool = False
    remaining_paid: bool = False
    advance_gateway_order_id: Optional[str] = None
    advance_gateway_payment_id: Optional[str] = None
    advance_paid_at: Optional[str] = None
    remaining_gateway_order_id: Optional[str] = None
    remaining_gateway_payment_id: Optional[str] = None
    remaining_paid_at: Optional[str] = None

    def amount_for(self, phase: PaymentPhase) -> int:
        if phase is PaymentPhase.ADVANCE:
            return self.advance_amount
        return self.remaining_amount

    def is_paid(self, phase: PaymentPhase) -> bool:
        if phase is PaymentPhase.ADVANCE:
            return self.advance_paid
        return self.remaining_paid

    def order_id_for(self, phase: PaymentPhase) -> Optional[str]:
        if phase is PaymentPhase.ADVANCE:
            return self.advance_gateway_order_id
        return self.remaining_gateway_order_id

    def payment_id_for(self, phase: PaymentPhase) -> Optional[str]:
        if phase is PaymentPhase.ADVANCE:
            return self.advance_gateway_payment_id
        return self.remaining_gateway_payment_id


@dataclass
class Report:
    water_found: bool
    findings: Dict[str, Any] = field(default_factory=dict)
    uploaded_at: Optional[str] = None


@dataclass
class Booking:
    booking_id: str
    user_id: str
    vendor_id: str
    service_id: str
    status: BookingStatus
    scheduled_date: str
    scheduled_time: str
    address: Dict[str, Any]
    payment: Payment
    report: Optional[Report] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    assigned_at: Optional[str] = None
    accepted_at: Optional[str] = None
    visited_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def report_unlocked(self) -> bool:
        return self.payment.remaining_paid

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Booking":
        payment = Payment(
            base_service_fee=int(row["base_service_fee"]),
            travel_charges=int(row["travel_charges"]),
            gst=int(row["gst"]),
            total_amount=int(row["total_amount"]),
            advance_amount=int(row["advance_amount"]),
            remaining_amount=int(row["remaining_amount"]),
            currency=row["currency"],
            advance_paid=bool(row["advance_paid"]),
            remaining_paid=bool(row["remaining_paid"]),
            advance_gateway_order_id=row["advance_gateway_order_id"],
            advance_gateway_payment_id=row["advance_gateway_payment_id"],
            advance_paid_at=row["advance_paid_at"],
            remaining_gateway_order_id=row["remaining_gateway_order_id"],
            remaining_gateway_payment_id=row["remaining_gateway_payment_id"],
            remaining_paid_at=row["remaining_paid_at"],
        )

        report = None
        if row.get("report_json"):
            raw = json.loads(row["report_json"])
            report = Report(
                water_found=bool(raw.get("water_found")),
                findings=raw.get("findings") or {},
                uploaded_at=row.get("report_uploaded_at"),
            )

        return cls(
            booking_id=row["booking_id"],
            user_id=row["user_id"],
            vendor_id=row["vendor_id"],
            service_id=row["service_id"],
            status=BookingStatus(row["status"]),
            scheduled_date=row["scheduled_date"],
            scheduled_time=row["scheduled_time"],
            address=json.loads(row["address_json"]),
            payment=payment,
            report=report,
            notes=row.get("notes"),
            cancellation_reason=row.get("cancellation_reason"),
            cancelled_by=row.get("cancelled_by"),
            assigned_at=row.get("assigned_at"),
            accepted_at=row.get("accepted_at"),
            visited_at=row.get("visited_at"),
            completed_at=row.get("completed_at"),
            cancelled_at=row.get("cancelled_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            version=int(row["version"]),
        )
