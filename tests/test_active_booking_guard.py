# tests/test_active_booking_guard.py
import sqlite3
import threading

import pytest

from conftest import user
from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.booking.services.active_booking_guard import ActiveBookingGuard
from survey_app.common.time_utils import utc_now_iso
from survey_app.domain.booking_status import BookingEvent, PaymentPhase
from survey_app.domain.errors import ActiveBookingExists


def _fields(booking_id: str, user_id: str = "user_1"):
    now = utc_now_iso()
    return {
        "booking_id": booking_id,
        "user_id": user_id,
        "vendor_id": "vendor_1",
        "service_id": "svc",
        "status": "PENDING",
        "scheduled_date": "2026-11-02",
        "scheduled_time": "10:30",
        "address_json": "{}",
        "base_service_fee": 1000,
        "travel_charges": 0,
        "gst": 0,
        "total_amount": 1000,
        "advance_amount": 400,
        "remaining_amount": 600,
        "created_at": now,
        "updated_at": now,
    }


_HISTORY = {
    "from_status": None,
    "to_status": "PENDING",
    "event": "CREATED",
    "actor_role": "USER",
    "actor_id": "user_1",
}


def test_second_active_booking_is_refused_with_existing_id(new_booking):
    booking, _ = new_booking()

    with pytest.raises(ActiveBookingExists) as exc:
        new_booking()
    assert exc.value.booking_id == booking.booking_id


def test_paid_booking_still_blocks(new_booking, pay):
    booking, _ = new_booking()
    pay(booking.booking_id, PaymentPhase.ADVANCE)

    with pytest.raises(ActiveBookingExists):
        new_booking()


def test_terminal_booking_frees_the_slot(new_booking, lifecycle, settings):
    booking, _ = new_booking()
    guard = ActiveBookingGuard(repo=BookingRepository(settings.db_path))
    assert guard.can_create("user_1") is False

    lifecycle.transition(booking.booking_id, BookingEvent.CANCEL, user())
    assert guard.can_create("user_1") is True

    second, _ = new_booking()
    assert second.booking_id != booking.booking_id


def test_other_users_are_independent(new_booking):
    new_booking("user_1")
    other, _ = new_booking("user_2")
    assert other.user_id == "user_2"


def test_unique_index_backs_up_the_guard(settings):
    repo = BookingRepository(settings.db_path)
    conn = repo.open_connection()
    try:
        repo.insert_booking(conn, _fields("bk_a"))
        with pytest.raises(sqlite3.IntegrityError):
            repo.insert_booking(conn, _fields("bk_b"))
    finally:
        conn.close()


def test_concurrent_creates_yield_exactly_one(settings):
    guard = ActiveBookingGuard(repo=BookingRepository(settings.db_path))
    outcomes = []
    lock = threading.Lock()

    def worker(i: int):
        try:
            guard.create_guarded(_fields(f"bk_{i}"), history=_HISTORY)
            result = "created"
        except ActiveBookingExists:
            result = "refused"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("refused") == 7
