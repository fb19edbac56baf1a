# survey_app/domain/money.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

# All amounts are integer minor units (paise).
ADVANCE_RATIO = Decimal("0.4")

# smallest order the gateway accepts (1.00 INR)
MIN_GATEWAY_ORDER_AMOUNT = 100


@dataclass(frozen=True)
class Charges:
    base_service_fee: int
    travel_charges: int
    gst: int
    total_amount: int


@dataclass(frozen=True)
class PaymentSplit:
    total_amount: int
    advance_amount: int
    remaining_amount: int


def split_payment(total_amount: int) -> PaymentSplit:
    """
    40/60 split.

    advance = total * 0.4 rounded half-to-even to a whole unit,
    remaining = total - advance (never rounded on its own), so
    advance + remaining == total always holds.
    """
    if isinstance(total_amount, bool) or not isinstance(total_amount, int):
        raise TypeError("total_amount must be an int of minor units")
    if total_amount < 0:
        raise ValueError("total_amount must be >= 0")

    advance = int(
        (Decimal(total_amount) * ADVANCE_RATIO).quantize(
            Decimal("1"), rounding=ROUND_HALF_EVEN
        )
    )
    return PaymentSplit(
        total_amount=total_amount,
        advance_amount=advance,
        remaining_amount=total_amount - advance,
    )
