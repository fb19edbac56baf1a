# survey_app/domain/booking_status.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    VISITED = "VISITED"
    REPORT_UPLOADED = "REPORT_UPLOADED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    ADMIN_APPROVED = "ADMIN_APPROVED"
    FINAL_SETTLEMENT = "FINAL_SETTLEMENT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class BookingEvent(str, Enum):
    ADVANCE_CONFIRMED = "ADVANCE_CONFIRMED"
    VENDOR_ACCEPTED = "VENDOR_ACCEPTED"
    VISIT_RECORDED = "VISIT_RECORDED"
    REPORT_UPLOADED = "REPORT_UPLOADED"
    REMAINING_CONFIRMED = "REMAINING_CONFIRMED"
    ADMIN_APPROVED = "ADMIN_APPROVED"
    SETTLEMENT_PROCESSED = "SETTLEMENT_PROCESSED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    CANCEL = "CANCEL"
    REJECT = "REJECT"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class ActorRole(str, Enum):
    USER = "USER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class PaymentPhase(str, Enum):
    ADVANCE = "advance"
    REMAINING = "remaining"


TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.FAILED,
    }
)

ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    s for s in BookingStatus if s not in TERMINAL_STATUSES
)

# REPORT_UPLOADED is accepted wherever AWAITING_PAYMENT is (remaining phase gate)
REMAINING_PAYABLE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.AWAITING_PAYMENT, BookingStatus.REPORT_UPLOADED}
)

# status in which each phase may be initiated / verified
PHASE_GATE: Dict[PaymentPhase, FrozenSet[BookingStatus]] = {
    PaymentPhase.ADVANCE: frozenset({BookingStatus.PENDING}),
    PaymentPhase.REMAINING: REMAINING_PAYABLE_STATUSES,
}

PHASE_CONFIRM_EVENT: Dict[PaymentPhase, BookingEvent] = {
    PaymentPhase.ADVANCE: BookingEvent.ADVANCE_CONFIRMED,
    PaymentPhase.REMAINING: BookingEvent.REMAINING_CONFIRMED,
}


@dataclass(frozen=True)
class TransitionRule:
    sources: Optional[FrozenSet[BookingStatus]]  # None = any non-terminal status
    target: BookingStatus
    actors: FrozenSet[ActorRole]


_ALL = frozenset(ActorRole)


TRANSITIONS: Dict[BookingEvent, TransitionRule] = {
    BookingEvent.ADVANCE_CONFIRMED: TransitionRule(
        frozenset({BookingStatus.PENDING}),
        BookingStatus.ASSIGNED,
        frozenset({ActorRole.SYSTEM}),
    ),
    BookingEvent.VENDOR_ACCEPTED: TransitionRule(
        frozenset({BookingStatus.ASSIGNED}),
        BookingStatus.ACCEPTED,
        frozenset({ActorRole.VENDOR, ActorRole.ADMIN}),
    ),
    BookingEvent.VISIT_RECORDED: TransitionRule(
        frozenset({BookingStatus.ACCEPTED}),
        BookingStatus.VISITED,
        frozenset({ActorRole.VENDOR, ActorRole.ADMIN}),
    ),
    # report upload lands directly in AWAITING_PAYMENT
    BookingEvent.REPORT_UPLOADED: TransitionRule(
        frozenset({BookingStatus.VISITED}),
        BookingStatus.AWAITING_PAYMENT,
        frozenset({ActorRole.VENDOR, ActorRole.ADMIN}),
    ),
    BookingEvent.REMAINING_CONFIRMED: TransitionRule(
        REMAINING_PAYABLE_STATUSES,
        BookingStatus.PAYMENT_SUCCESS,
        frozenset({ActorRole.SYSTEM}),
    ),
    BookingEvent.ADMIN_APPROVED: TransitionRule(
        frozenset({BookingStatus.PAYMENT_SUCCESS}),
        BookingStatus.ADMIN_APPROVED,
        frozenset({ActorRole.ADMIN}),
    ),
    BookingEvent.SETTLEMENT_PROCESSED: TransitionRule(
        frozenset({BookingStatus.ADMIN_APPROVED}),
        BookingStatus.FINAL_SETTLEMENT,
        frozenset({ActorRole.ADMIN}),
    ),
    BookingEvent.BOOKING_COMPLETED: TransitionRule(
        frozenset({BookingStatus.FINAL_SETTLEMENT}),
        BookingStatus.COMPLETED,
        frozenset({ActorRole.ADMIN}),
    ),
    BookingEvent.CANCEL: TransitionRule(None, BookingStatus.CANCELLED, _ALL),
    BookingEvent.REJECT: TransitionRule(
        None,
        BookingStatus.REJECTED,
        frozenset({ActorRole.VENDOR, ActorRole.ADMIN}),
    ),
    BookingEvent.PAYMENT_FAILED: TransitionRule(
        None,
        BookingStatus.FAILED,
        frozenset({ActorRole.SYSTEM, ActorRole.ADMIN}),
    ),
}


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES
