# tests/test_refunds.py
import pytest

from conftest import admin, headers, user
from survey_app.domain.booking_status import BookingEvent, PaymentPhase
from survey_app.domain.errors import (
    AlreadyTerminal,
    GatewayUnavailable,
    InvalidTransition,
    PaymentAttemptNotFound,
)
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)
from survey_app.integrations.payments.refund_service import PaymentRefundService


def _service(settings, gateway):
    return PaymentRefundService(
        gateway=gateway,
        attempts=PaymentAttemptRepository(settings.db_path),
    )


def _outcomes(settings, booking_id):
    return [a["outcome"] for a in PaymentAttemptRepository(settings.db_path).list_by_booking(booking_id)]


def _paid_after_cancel(new_booking, lifecycle, pay):
    booking, _ = new_booking()
    lifecycle.transition(booking.booking_id, BookingEvent.CANCEL, user())
    with pytest.raises(AlreadyTerminal):
        pay(booking.booking_id, PaymentPhase.ADVANCE, payment_id="pay_late")
    return booking


def test_payment_after_cancel_is_refunded(new_booking, lifecycle, pay, gateway, settings):
    booking = _paid_after_cancel(new_booking, lifecycle, pay)
    service = _service(settings, gateway)

    pending = service.list_pending_refunds()
    assert [(p["outcome"], p["gateway_payment_id"]) for p in pending] == [
        ("paid_after_terminal", "pay_late")
    ]

    result = service.refund_attempt(pending[0]["attempt_id"], actor=admin())

    assert result.already_refunded is False
    assert result.amount == 400_000
    assert result.gateway_refund_id == "rfnd_1"
    refund, notes = gateway.refunds[0]
    assert refund.payment_id == "pay_late"
    assert notes["booking_id"] == booking.booking_id
    assert notes["reason"] == "paid_after_terminal"

    assert _outcomes(settings, booking.booking_id)[-1] == "refunded"
    assert service.list_pending_refunds() == []


def test_duplicate_payment_is_refunded_once(new_booking, pay, gateway, settings):
    booking, _ = new_booking()
    pay(booking.booking_id, PaymentPhase.ADVANCE, payment_id="pay_A")
    pay(booking.booking_id, PaymentPhase.ADVANCE, payment_id="pay_B")
    # the same duplicate reported again (webhook redelivery)
    pay(booking.booking_id, PaymentPhase.ADVANCE, payment_id="pay_B")

    service = _service(settings, gateway)
    pending = service.list_pending_refunds()
    assert [p["gateway_payment_id"] for p in pending] == ["pay_B"]

    first = service.refund_attempt(pending[0]["attempt_id"], actor=admin())
    again = service.refund_attempt(pending[0]["attempt_id"], actor=admin())

    assert first.gateway_payment_id == "pay_B"
    assert again.already_refunded is True
    assert again.gateway_refund_id == first.gateway_refund_id
    assert len(gateway.refunds) == 1
    assert _outcomes(settings, booking.booking_id).count("refunded") == 1


def test_attempt_that_backs_a_phase_is_not_refundable(new_booking, gateway, settings):
    booking, _ = new_booking()
    created = PaymentAttemptRepository(settings.db_path).list_by_booking(booking.booking_id)[0]
    assert created["outcome"] == "order_created"

    with pytest.raises(InvalidTransition):
        _service(settings, gateway).refund_attempt(created["attempt_id"], actor=admin())
    assert gateway.refunds == []


def test_unknown_attempt(gateway, settings):
    with pytest.raises(PaymentAttemptNotFound):
        _service(settings, gateway).refund_attempt(9999, actor=admin())


def test_failed_refund_is_recorded_and_stays_pending(new_booking, lifecycle, pay, gateway, settings):
    booking = _paid_after_cancel(new_booking, lifecycle, pay)
    service = _service(settings, gateway)
    attempt_id = service.list_pending_refunds()[0]["attempt_id"]

    gateway.fail_refund = GatewayUnavailable("gateway timeout")
    with pytest.raises(GatewayUnavailable):
        service.refund_attempt(attempt_id, actor=admin())

    assert _outcomes(settings, booking.booking_id)[-1] == "refund_failed"
    assert [p["attempt_id"] for p in service.list_pending_refunds()] == [attempt_id]


# --------------------------------------------------
# HTTP
# --------------------------------------------------
def test_admin_refund_routes(client, new_booking, lifecycle, pay, gateway):
    booking = _paid_after_cancel(new_booking, lifecycle, pay)

    assert client.get("/api/admin/refunds", headers=headers(user())).status_code == 403

    r = client.get("/api/admin/refunds", headers=headers(admin()))
    assert r.status_code == 200
    pending = r.json()
    assert len(pending) == 1
    assert pending[0]["booking_id"] == booking.booking_id

    r = client.post(f"/api/admin/refunds/{pending[0]['attempt_id']}", headers=headers(admin()))
    assert r.status_code == 200
    assert r.json()["gateway_refund_id"] == "rfnd_1"
    assert r.json()["already_refunded"] is False

    assert client.get("/api/admin/refunds", headers=headers(admin())).json() == []
    assert client.post("/api/admin/refunds/9999", headers=headers(admin())).status_code == 404
