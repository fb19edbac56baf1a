# tests/conftest.py
import hashlib
import hmac
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from survey_app.booking.services.booking_service import NewBookingInput
from survey_app.config.settings import AppSettings
from survey_app.db.schema import init_schema
from survey_app.dependencies import (
    build_coordinator,
    build_lifecycle,
    get_booking_service,
    get_gateway,
    get_settings,
)
from survey_app.domain.booking_status import ActorRole, PaymentPhase
from survey_app.domain.errors import GatewayRejected, GatewayUnavailable
from survey_app.domain.models import Actor, Report
from survey_app.integrations.payments.razorpay.razorpay_client import (
    MAX_RECEIPT_LENGTH,
    OrderRef,
    RefundRef,
)
from survey_app.main import app
from survey_app.pricing.pricing_client import TablePricingClient

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"

SERVICE_ID = "svc_water_survey"

# 8,000 + 1,000 + 1,000 INR = 10,000 INR (in paise)
TOTAL_PAISE = 1_000_000

ADDRESS = {
    "street": "12 Temple Road",
    "city": "Guntur",
    "state": "Andhra Pradesh",
    "pincode": "522001",
    "coordinates": {"lat": 16.3, "lng": 80.45},
}


class FakeGateway:
    """
    In-memory gateway with the RazorpayClient interface.

    - orders are keyed by receipt (idempotency key)
    - fail_next makes the next N create_order calls raise GatewayUnavailable
    - paid maps order_id -> captured payment id (reconciliation, resume)
    - refunds collects issued refunds; fail_refund makes refund() raise
    """

    def __init__(self, secret: str = KEY_SECRET) -> None:
        self.secret = secret
        self.orders = {}
        self.create_calls = 0
        self.keys = []
        self.notes = []
        self.fail_next = 0
        self.paid = {}
        self.refunds = []
        self.fail_refund = None

    def create_order(self, amount, currency, idempotency_key, notes=None):
        self.create_calls += 1
        self.keys.append(idempotency_key)
        self.notes.append(notes)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise GatewayUnavailable("gateway timeout")
        if len(idempotency_key) > MAX_RECEIPT_LENGTH:
            raise GatewayRejected("receipt: the length must be no more than 40.")

        existing = self.orders.get(idempotency_key)
        if existing is not None:
            return existing

        order = OrderRef(
            order_id=f"order_{len(self.orders) + 1}",
            amount=amount,
            currency=currency,
            receipt=idempotency_key,
        )
        self.orders[idempotency_key] = order
        return order

    def fetch_order(self, order_id):
        for order in self.orders.values():
            if order.order_id == order_id:
                status = "paid" if order_id in self.paid else "created"
                return replace(order, status=status)
        raise GatewayRejected(f"order {order_id} does not exist")

    def fetch_paid_payment(self, order_id):
        return self.paid.get(order_id)

    def refund(self, payment_id, amount, notes=None):
        if self.fail_refund is not None:
            raise self.fail_refund
        ref = RefundRef(
            refund_id=f"rfnd_{len(self.refunds) + 1}",
            payment_id=payment_id,
            amount=amount,
            status="processed",
        )
        self.refunds.append((ref, notes))
        return ref

    def sign(self, order_id, payment_id):
        """Checkout-side signature, as Razorpay hands it to the client."""
        return _hmac_hex(self.secret, f"{order_id}|{payment_id}".encode("utf-8"))

    def verify_signature(self, order_id, payment_id, signature):
        return hmac.compare_digest(self.sign(order_id, payment_id), signature or "")

    def verify_webhook_signature(self, body, signature):
        return hmac.compare_digest(_hmac_hex(WEBHOOK_SECRET, body), signature or "")


def _hmac_hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def user(user_id: str = "user_1") -> Actor:
    return Actor(role=ActorRole.USER, actor_id=user_id)


def vendor(vendor_id: str = "vendor_1") -> Actor:
    return Actor(role=ActorRole.VENDOR, actor_id=vendor_id)


def admin() -> Actor:
    return Actor(role=ActorRole.ADMIN, actor_id="admin_1")


def headers(actor: Actor) -> dict:
    return {"X-User-Id": actor.actor_id, "X-Actor-Role": actor.role.value}


# --------------------------------------------------
# Fixtures
# --------------------------------------------------
@pytest.fixture
def settings(tmp_path):
    s = AppSettings(
        db_path=tmp_path / "test.db",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=KEY_SECRET,
        razorpay_webhook_secret=WEBHOOK_SECRET,
        gateway_max_retries=2,
        fake_payments_enabled=True,
        stale_payment_minutes=30,
    )
    init_schema(s.db_path)
    TablePricingClient(s.db_path).upsert_price(
        SERVICE_ID,
        base_service_fee=800_000,
        travel_charges=100_000,
        gst=100_000,
    )
    return s


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def lifecycle(settings):
    return build_lifecycle(settings)


@pytest.fixture
def coordinator(settings, gateway):
    return build_coordinator(settings, gateway)


@pytest.fixture
def booking_service(settings, gateway):
    return get_booking_service(settings=settings, gateway=gateway)


@pytest.fixture
def new_booking(booking_service):
    """Factory: creates a PENDING booking with an open advance order."""

    def _create(user_id: str = "user_1", vendor_id: str = "vendor_1"):
        return booking_service.create_booking(
            user(user_id),
            NewBookingInput(
                vendor_id=vendor_id,
                service_id=SERVICE_ID,
                scheduled_date="2026-11-02",
                scheduled_time="10:30",
                address=dict(ADDRESS),
            ),
        )

    return _create


@pytest.fixture
def pay(coordinator, gateway, lifecycle):
    """Verifies a phase with a correctly signed payment."""

    def _pay(booking_id: str, phase: PaymentPhase, payment_id: str = "pay_1"):
        booking = lifecycle.get_booking(booking_id)
        order_id = booking.payment.order_id_for(phase)
        if order_id is None:
            order_id = coordinator.initiate_payment(booking_id, phase).gateway_order_id
        return coordinator.verify_payment(
            booking_id,
            phase,
            order_id,
            payment_id,
            gateway.sign(order_id, payment_id),
        )

    return _pay


@pytest.fixture
def awaiting_payment(new_booking, pay, booking_service):
    """Factory: a booking driven to AWAITING_PAYMENT with the advance paid."""

    def _make(user_id: str = "user_1", vendor_id: str = "vendor_1"):
        booking, _ = new_booking(user_id, vendor_id)
        pay(booking.booking_id, PaymentPhase.ADVANCE, payment_id=f"pay_adv_{user_id}")
        v = vendor(vendor_id)
        booking_service.accept_booking(booking.booking_id, v)
        booking_service.record_visit(booking.booking_id, v)
        return booking_service.upload_report(
            booking.booking_id,
            v,
            Report(water_found=True, findings={"depth_ft": 180, "yield": "high"}),
        )

    return _make


@pytest.fixture
def client(settings, gateway):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
