# survey_app/integrations/payments/razorpay/razorpay_client.py
"""
RazorpayClient

- Adapter over the razorpay SDK (orders, payments, refunds, signatures).
- Holds no state of its own and never retries; the payment coordinator
  owns the retry policy.
- Transport failures and gateway / server errors are GatewayUnavailable
  (transient), BadRequestError is GatewayRejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import razorpay
import requests

from survey_app.config.settings import AppSettings
from survey_app.domain.errors import GatewayRejected, GatewayUnavailable, ValidationError
from survey_app.domain.money import MIN_GATEWAY_ORDER_AMOUNT

logger = logging.getLogger(__name__)

# Razorpay rejects order receipts longer than this
MAX_RECEIPT_LENGTH = 40


@dataclass(frozen=True)
class OrderRef:
    order_id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: str = "created"  # created | attempted | paid


@dataclass(frozen=True)
class RefundRef:
    refund_id: str
    payment_id: str
    amount: int
    status: str


class RazorpayClient:
    def __init__(
        self,
        settings: AppSettings,
        *,
        client: Optional[razorpay.Client] = None,
    ) -> None:
        self._key_id = settings.razorpay_key_id
        self._key_secret = settings.razorpay_key_secret
        self._webhook_secret = settings.razorpay_webhook_secret
        self._timeout = settings.gateway_timeout_sec
        self._client = client or razorpay.Client(auth=(self._key_id, self._key_secret))

    # -------------------------------------------------
    # Orders
    # -------------------------------------------------
    def create_order(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> OrderRef:
        """
        idempotency_key is sent as the order receipt. An order already
        carrying that receipt (same amount) is returned instead of a new one.
        """
        if amount < MIN_GATEWAY_ORDER_AMOUNT:
            raise ValidationError(
                f"order amount must be at least {MIN_GATEWAY_ORDER_AMOUNT} minor units"
            )
        if not idempotency_key or len(idempotency_key) > MAX_RECEIPT_LENGTH:
            raise ValidationError(
                f"receipt must be 1..{MAX_RECEIPT_LENGTH} characters: {idempotency_key!r}"
            )

        existing = self.find_order_by_receipt(idempotency_key)
        if existing is not None and existing.amount == amount:
            logger.info(
                "razorpay order reused order_id=%s receipt=%s",
                existing.order_id,
                idempotency_key,
            )
            return existing

        data = self._call(
            "order.create",
            self._client.order.create,
            {
                "amount": amount,
                "currency": currency,
                "receipt": idempotency_key,
                "notes": dict(notes or {}),
            },
        )
        order = self._to_order_ref(data)
        logger.info(
            "razorpay order created order_id=%s amount=%s receipt=%s",
            order.order_id,
            order.amount,
            idempotency_key,
        )
        return order

    def find_order_by_receipt(self, receipt: str) -> Optional[OrderRef]:
        data = self._call("order.all", self._client.order.all, {"receipt": receipt})
        for item in data.get("items") or []:
            if item.get("receipt") == receipt:
                return self._to_order_ref(item)
        return None

    def fetch_order(self, order_id: str) -> OrderRef:
        return self._to_order_ref(
            self._call("order.fetch", self._client.order.fetch, order_id)
        )

    def fetch_paid_payment(self, order_id: str) -> Optional[str]:
        """
        Returns the id of a captured payment on the order, or None.
        Used by the reconciliation sweep and by initiate on resume.
        """
        data = self._call("order.payments", self._client.order.payments, order_id)
        for item in data.get("items") or []:
            if item.get("status") == "captured":
                return str(item["id"])
        return None

    # -------------------------------------------------
    # Refunds
    # -------------------------------------------------
    def refund(
        self,
        payment_id: str,
        amount: int,
        notes: Optional[Dict[str, str]] = None,
    ) -> RefundRef:
        data = self._call(
            "payment.refund",
            self._client.payment.refund,
            payment_id,
            {"amount": amount, "notes": dict(notes or {})},
        )
        refund = RefundRef(
            refund_id=str(data["id"]),
            payment_id=str(data.get("payment_id") or payment_id),
            amount=int(data.get("amount", amount)),
            status=str(data.get("status") or "pending"),
        )
        logger.info(
            "razorpay refund created refund_id=%s payment_id=%s amount=%s",
            refund.refund_id,
            payment_id,
            refund.amount,
        )
        return refund

    # -------------------------------------------------
    # Signatures
    # -------------------------------------------------
    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self._key_secret or not signature:
            return False
        try:
            return bool(
                self._client.utility.verify_payment_signature(
                    {
                        "razorpay_order_id": order_id,
                        "razorpay_payment_id": payment_id,
                        "razorpay_signature": signature,
                    }
                )
            )
        except razorpay.errors.SignatureVerificationError:
            return False

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret or not signature:
            return False
        try:
            return bool(
                self._client.utility.verify_webhook_signature(
                    body.decode("utf-8"), signature, self._webhook_secret
                )
            )
        except razorpay.errors.SignatureVerificationError:
            return False
        except UnicodeDecodeError:
            return False

    # =================================================
    # Internal helpers
    # =================================================
    def _call(self, name: str, fn: Callable[..., Dict[str, Any]], *args: Any) -> Dict[str, Any]:
        if not self._key_id or not self._key_secret:
            raise GatewayUnavailable("razorpay credentials are not configured")

        try:
            return fn(*args, timeout=self._timeout)
        except razorpay.errors.BadRequestError as e:
            logger.warning("razorpay %s rejected: %s", name, e)
            raise GatewayRejected(f"razorpay rejected request: {e}")
        except (razorpay.errors.GatewayError, razorpay.errors.ServerError) as e:
            logger.warning("razorpay %s failed: %s", name, e)
            raise GatewayUnavailable(f"razorpay error: {e}")
        except requests.RequestException as e:
            logger.warning("razorpay %s transport failure: %s", name, e)
            raise GatewayUnavailable(f"razorpay request failed: {e}") from e
        except ValueError as e:
            # undecodable body
            raise GatewayUnavailable(f"razorpay returned an unreadable body: {e}") from e

    @staticmethod
    def _to_order_ref(data: Dict[str, Any]) -> OrderRef:
        return OrderRef(
            order_id=str(data["id"]),
            amount=int(data["amount"]),
            currency=str(data.get("currency") or "INR"),
            receipt=data.get("receipt"),
            status=str(data.get("status") or "created"),
        )
