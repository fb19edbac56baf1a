# survey_app/booking/services/active_booking_guard.py
from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Optional

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.domain.errors import ActiveBookingExists
from survey_app.domain.models import Booking

logger = logging.getLogger(__name__)


class ActiveBookingGuard:
    """
    One non-terminal booking per user.

    can_create() is an advisory read for the UI. The rule is enforced by
    create_guarded(), where the check and the insert share one
    BEGIN IMMEDIATE transaction; the partial unique index on
    bookings(user_id) backs it up at the database level.
    """

    def __init__(self, *, repo: Optional[BookingRepository] = None) -> None:
        self._repo = repo or BookingRepository()

    def can_create(self, user_id: str) -> bool:
        return self._repo.find_active_for_user(user_id) is None

    def create_guarded(self, fields: Dict[str, Any], *, history: Dict[str, Any]) -> Booking:
        user_id = fields["user_id"]
        booking_id = fields["booking_id"]

        conn = self._repo.open_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = self._repo.find_active_for_user(user_id, conn=conn)
                if existing is not None:
                    conn.execute("ROLLBACK")
                    raise ActiveBookingExists(existing.booking_id)

                self._repo.insert_booking(conn, fields)
                self._repo.insert_history(conn, booking_id=booking_id, **history)
                conn.execute("COMMIT")

            except sqlite3.IntegrityError:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                # lost the race against a concurrent insert for the same user
                existing = self._repo.find_active_for_user(user_id, conn=conn)
                if existing is not None:
                    raise ActiveBookingExists(existing.booking_id)
                raise
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            booking = self._repo.fetch_booking(booking_id, conn=conn)
            if booking is None:
                raise RuntimeError("Booking disappeared after insert")

            logger.info("booking created booking_id=%s user_id=%s", booking_id, user_id)
            return booking
        finally:
            conn.close()
