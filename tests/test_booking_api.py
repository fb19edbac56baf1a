# tests/test_booking_api.py
import hashlib
import hmac
import json

from conftest import ADDRESS, SERVICE_ID, WEBHOOK_SECRET, admin, headers, user, vendor

U1 = headers(user("user_1"))
V1 = headers(vendor("vendor_1"))
ADMIN = headers(admin())


def _create(client, h=U1):
    return client.post(
        "/api/bookings",
        json={
            "vendor_id": "vendor_1",
            "service_id": SERVICE_ID,
            "scheduled_date": "2026-11-02",
            "scheduled_time": "10:30",
            "address": ADDRESS,
            "notes": "borewell near the gate",
        },
        headers=h,
    )


def _verify(client, gateway, booking_id, phase, order_id, payment_id, h=U1):
    return client.post(
        f"/api/bookings/{booking_id}/payments/{phase}/verify",
        json={
            "gateway_order_id": order_id,
            "gateway_payment_id": payment_id,
            "signature": gateway.sign(order_id, payment_id),
        },
        headers=h,
    )


def _to_awaiting_payment(client, gateway):
    res = _create(client).json()
    booking_id = res["booking"]["booking_id"]
    _verify(client, gateway, booking_id, "advance", res["advance_order"]["gateway_order_id"], "pay_adv")

    assert client.post(f"/api/vendor/bookings/{booking_id}/accept", headers=V1).status_code == 200
    assert client.post(f"/api/vendor/bookings/{booking_id}/visit", headers=V1).status_code == 200
    r = client.post(
        f"/api/vendor/bookings/{booking_id}/report",
        json={"water_found": True, "findings": {"depth_ft": 180, "points": 3}},
        headers=V1,
    )
    assert r.status_code == 200
    return booking_id


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200


def test_requires_identity(client):
    r = client.get("/api/bookings")
    assert r.status_code == 401


def test_full_scenario_ten_thousand_rupees(client, gateway):
    r = _create(client)
    assert r.status_code == 201
    body = r.json()
    booking = body["booking"]
    order = body["advance_order"]

    assert booking["status"] == "PENDING"
    assert booking["payment"]["total_amount"] == 1_000_000
    assert booking["payment"]["advance_amount"] == 400_000
    assert booking["payment"]["remaining_amount"] == 600_000
    assert booking["payment"]["payment_state"] == "ADVANCE_PENDING"
    assert order["amount"] == 400_000
    assert order["phase"] == "advance"
    assert order["key_id"] == "rzp_test_key"

    r = _verify(client, gateway, booking["booking_id"], "advance", order["gateway_order_id"], "pay_1")
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["booking"]["status"] == "ASSIGNED"

    # same user, booking not terminal: refused with the existing id
    r = _create(client)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "ACTIVE_BOOKING_EXISTS"
    assert r.json()["detail"]["booking_id"] == booking["booking_id"]


def test_report_gated_until_remaining_paid(client, gateway):
    booking_id = _to_awaiting_payment(client, gateway)

    view = client.get(f"/api/bookings/{booking_id}", headers=U1).json()
    assert view["status"] == "AWAITING_PAYMENT"
    assert view["payment"]["payment_state"] == "REMAINING_PENDING"
    assert view["report"] == {
        "water_found": True,
        "locked": True,
        "findings": None,
        "uploaded_at": None,
    }

    # the vendor always sees what they uploaded
    vendor_view = client.get(f"/api/bookings/{booking_id}", headers=V1).json()
    assert vendor_view["report"]["findings"] == {"depth_ft": 180, "points": 3}

    order = client.post(
        f"/api/bookings/{booking_id}/payments/remaining/initiate", headers=U1
    ).json()
    assert order["amount"] == 600_000

    r = _verify(client, gateway, booking_id, "remaining", order["gateway_order_id"], "pay_2")
    assert r.json()["success"] is True
    assert r.json()["booking"]["status"] == "PAYMENT_SUCCESS"

    view = client.get(f"/api/bookings/{booking_id}", headers=U1).json()
    assert view["payment"]["remaining_paid"] is True
    assert view["payment"]["payment_state"] == "PAID_IN_FULL"
    assert view["report"]["locked"] is False
    assert view["report"]["findings"] == {"depth_ft": 180, "points": 3}


def test_failed_advance_disappears_from_active(client):
    res = _create(client).json()
    booking_id = res["booking"]["booking_id"]

    r = client.post(
        f"/api/bookings/{booking_id}/payments/advance/failure",
        json={"gateway_order_id": res["advance_order"]["gateway_order_id"], "reason": "card declined"},
        headers=U1,
    )
    assert r.status_code == 200
    assert r.json()["success"] is False
    assert r.json()["booking"]["status"] == "CANCELLED"

    active = client.get("/api/bookings/active", headers=U1).json()
    assert active["booking"] is None

    # slot is free again
    assert _create(client).status_code == 201


def test_failed_remaining_stays_pending_retry(client, gateway):
    booking_id = _to_awaiting_payment(client, gateway)
    order = client.post(
        f"/api/bookings/{booking_id}/payments/remaining/initiate", headers=U1
    ).json()

    r = client.post(
        f"/api/bookings/{booking_id}/payments/remaining/verify",
        json={
            "gateway_order_id": order["gateway_order_id"],
            "gateway_payment_id": "pay_bad",
            "signature": "0" * 64,
        },
        headers=U1,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["error_code"] == "SIGNATURE_MISMATCH"
    assert body["booking"]["status"] == "AWAITING_PAYMENT"

    active = client.get("/api/bookings/active", headers=U1).json()
    assert active["booking"]["booking_id"] == booking_id
    assert active["booking"]["payment"]["payment_state"] == "REMAINING_PENDING"

    # retry returns the same open order
    again = client.post(
        f"/api/bookings/{booking_id}/payments/remaining/initiate", headers=U1
    ).json()
    assert again["gateway_order_id"] == order["gateway_order_id"]


def test_cancel_and_terminal_errors(client):
    booking_id = _create(client).json()["booking"]["booking_id"]

    r = client.post(f"/api/bookings/{booking_id}/cancel", json={"reason": "changed plans"}, headers=U1)
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert r.json()["cancellation_reason"] == "changed plans"

    r = client.post(f"/api/bookings/{booking_id}/cancel", headers=U1)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "ALREADY_TERMINAL"


def test_vendor_out_of_order_is_invalid_transition(client):
    booking_id = _create(client).json()["booking"]["booking_id"]
    r = client.post(f"/api/vendor/bookings/{booking_id}/visit", headers=V1)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_other_user_cannot_see_booking(client):
    booking_id = _create(client).json()["booking"]["booking_id"]
    r = client.get(f"/api/bookings/{booking_id}", headers=headers(user("user_2")))
    assert r.status_code == 404


def test_role_routes_are_separated(client):
    booking_id = _create(client).json()["booking"]["booking_id"]
    assert client.post(f"/api/vendor/bookings/{booking_id}/accept", headers=U1).status_code == 403
    assert client.post(f"/api/admin/bookings/{booking_id}/approve", headers=V1).status_code == 403


def test_validation_errors(client):
    bad_address = dict(ADDRESS)
    bad_address.pop("pincode")
    r = client.post(
        "/api/bookings",
        json={
            "vendor_id": "vendor_1",
            "service_id": SERVICE_ID,
            "scheduled_date": "2026-11-02",
            "scheduled_time": "10:30",
            "address": bad_address,
        },
        headers=U1,
    )
    assert r.status_code == 422

    r = client.post(
        "/api/bookings",
        json={
            "vendor_id": "vendor_1",
            "service_id": SERVICE_ID,
            "scheduled_date": "02/11/2026",
            "scheduled_time": "10:30",
            "address": ADDRESS,
        },
        headers=U1,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "VALIDATION_ERROR"

    r = client.post(
        "/api/bookings",
        json={
            "vendor_id": "vendor_1",
            "service_id": "svc_unknown",
            "scheduled_date": "2026-11-02",
            "scheduled_time": "10:30",
            "address": ADDRESS,
        },
        headers=U1,
    )
    assert r.status_code == 400


def test_gateway_down_returns_503_with_booking_id(client, gateway):
    gateway.fail_next = 3
    r = _create(client)
    assert r.status_code == 503
    detail = r.json()["detail"]
    assert detail["code"] == "GATEWAY_UNAVAILABLE"
    booking_id = detail["booking_id"]

    r = client.post(f"/api/bookings/{booking_id}/payments/advance/initiate", headers=U1)
    assert r.status_code == 200
    assert r.json()["amount"] == 400_000


def test_resume_of_paid_order_is_409_and_settles(client, gateway):
    res = _create(client).json()
    booking_id = res["booking"]["booking_id"]
    gateway.paid[res["advance_order"]["gateway_order_id"]] = "pay_lost"

    r = client.post(f"/api/bookings/{booking_id}/payments/advance/initiate", headers=U1)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "PHASE_ALREADY_PAID"

    booking = client.get(f"/api/bookings/{booking_id}", headers=U1).json()
    assert booking["status"] == "ASSIGNED"


def test_admin_flow_and_payment_attempts(client, gateway):
    booking_id = _to_awaiting_payment(client, gateway)
    order = client.post(
        f"/api/bookings/{booking_id}/payments/remaining/initiate", headers=U1
    ).json()
    _verify(client, gateway, booking_id, "remaining", order["gateway_order_id"], "pay_2")

    for step, status in [("approve", "ADMIN_APPROVED"), ("settle", "FINAL_SETTLEMENT"), ("complete", "COMPLETED")]:
        r = client.post(f"/api/admin/bookings/{booking_id}/{step}", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["status"] == status

    attempts = client.get(f"/api/admin/bookings/{booking_id}/payment-attempts", headers=ADMIN).json()
    outcomes = [a["outcome"] for a in attempts]
    assert outcomes.count("verified") == 2
    assert outcomes.count("order_created") == 2

    history = client.get(f"/api/bookings/{booking_id}/history", headers=U1).json()
    assert history[-1]["to_status"] == "COMPLETED"

    listed = client.get("/api/bookings", headers=U1).json()
    assert listed["total_count"] == 1
    assert listed["bookings"][0]["status"] == "COMPLETED"


def test_fake_advance_payment_route(client, settings):
    booking_id = _create(client).json()["booking"]["booking_id"]
    r = client.post(f"/dev/bookings/{booking_id}/fake-advance-payment")
    assert r.status_code == 200
    assert r.json()["status"] == "ASSIGNED"


def test_fake_advance_payment_route_hidden_when_disabled(client, settings):
    from dataclasses import replace

    from survey_app.dependencies import get_settings
    from survey_app.main import app

    booking_id = _create(client).json()["booking"]["booking_id"]
    app.dependency_overrides[get_settings] = lambda: replace(settings, fake_payments_enabled=False)

    r = client.post(f"/dev/bookings/{booking_id}/fake-advance-payment")
    assert r.status_code == 404


def test_webhook_captured_confirms_advance(client, gateway):
    res = _create(client).json()
    booking_id = res["booking"]["booking_id"]
    order_id = res["advance_order"]["gateway_order_id"]

    body = json.dumps({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_wh", "order_id": order_id, "status": "captured"}}},
    }).encode()
    sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

    r = client.post("/razorpay/webhook", content=body, headers={"X-Razorpay-Signature": sig})
    assert r.status_code == 200

    view = client.get(f"/api/bookings/{booking_id}", headers=U1).json()
    assert view["status"] == "ASSIGNED"

    # the client's own verify afterwards is a no-op success
    r = _verify(client, gateway, booking_id, "advance", order_id, "pay_wh")
    assert r.json()["success"] is True
    assert r.json()["already_processed"] is True


def test_webhook_bad_signature(client):
    r = client.post("/razorpay/webhook", content=b"{}", headers={"X-Razorpay-Signature": "nope"})
    assert r.status_code == 400
