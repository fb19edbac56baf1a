# survey_app/booking/repository/booking_repo.py
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from survey_app.common.time_utils import utc_now_iso
from survey_app.db.core import open_connection
from survey_app.domain.booking_status import (
    ACTIVE_STATUSES,
    REMAINING_PAYABLE_STATUSES,
    BookingStatus,
    PaymentPhase,
)
from survey_app.domain.errors import BookingNotFound, Conflict
from survey_app.domain.models import Booking


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


class BookingRepository:
    """
    bookings / booking_status_history Repository.

    Responsibilities:
      - reads (by id, by user, by gateway order, stale candidates)
      - the versioned compare-and-swap write used by every mutation
      - the insert used inside the active-booking guard transaction

    Which transition is legal is decided by the lifecycle service, never here.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    # ==================================================
    # DB connection
    # ==================================================
    def open_connection(self) -> sqlite3.Connection:
        return open_connection(self.db_path)

    # ==================================================
    # Fetch
    # ==================================================
    def fetch_booking(
        self,
        booking_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        own = conn is None
        conn = conn or self.open_connection()
        try:
            row = conn.execute(
                "SELECT * FROM bookings WHERE booking_id = ?",
                (booking_id,),
            ).fetchone()
            return Booking.from_row(dict(row)) if row else None
        finally:
            if own:
                conn.close()

    def find_active_for_user(
        self,
        user_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        own = conn is None
        conn = conn or self.open_connection()
        try:
            row = conn.execute(
                f"""
                SELECT *
                FROM bookings
                WHERE user_id = ?
                  AND status IN ({_placeholders(len(_ACTIVE_VALUES))})
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (user_id, *_ACTIVE_VALUES),
            ).fetchone()
            return Booking.from_row(dict(row)) if row else None
        finally:
            if own:
                conn.close()

    def list_for_user(
        self,
        user_id: str,
        *,
        status: Optional[BookingStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Booking], int]:
        where = "user_id = ?"
        params: List[Any] = [user_id]
        if status is not None:
            where += " AND status = ?"
            params.append(status.value)

        conn = self.open_connection()
        try:
            total = conn.execute(
                f"SELECT COUNT(*) FROM bookings WHERE {where}",
                params,
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT *
                FROM bookings
                WHERE {where}
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            return [Booking.from_row(dict(r)) for r in rows], int(total)
        finally:
            conn.close()

    def fetch_by_gateway_order(
        self, gateway_order_id: str
    ) -> Optional[Tuple[Booking, PaymentPhase]]:
        conn = self.open_connection()
        try:
            row = conn.execute(
                """
                SELECT *
                FROM bookings
                WHERE advance_gateway_order_id = ?
                   OR remaining_gateway_order_id = ?
                LIMIT 1
                """,
                (gateway_order_id, gateway_order_id),
            ).fetchone()
            if not row:
                return None

            booking = Booking.from_row(dict(row))
            if booking.payment.advance_gateway_order_id == gateway_order_id:
                return booking, PaymentPhase.ADVANCE
            return booking, PaymentPhase.REMAINING
        finally:
            conn.close()

    def list_stale_payment_candidates(
        self, *, updated_before_iso: str, limit: int = 100
    ) -> List[Booking]:
        """
        Bookings waiting on a payment phase whose last write is older
        than the threshold (reconciliation sweep input).
        """
        statuses = [BookingStatus.PENDING.value] + [
            s.value for s in REMAINING_PAYABLE_STATUSES
        ]
        conn = self.open_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT *
                FROM bookings
                WHERE status IN ({_placeholders(len(statuses))})
                  AND updated_at < ?
                ORDER BY updated_at ASC
                LIMIT ?
                """,
                (*statuses, updated_before_iso, limit),
            ).fetchall()
            return [Booking.from_row(dict(r)) for r in rows]
        finally:
            conn.close()

    def list_status_history(self, booking_id: str) -> List[Dict[str, Any]]:
        conn = self.open_connection()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM booking_status_history
                WHERE booking_id = ?
                ORDER BY history_id ASC
                """,
                (booking_id,),
            ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()

    # ==================================================
    # Insert (called inside the guard's transaction)
    # ==================================================
    def insert_booking(self, conn: sqlite3.Connection, fields: Dict[str, Any]) -> None:
        cols = ", ".join(fields.keys())
        conn.execute(
            f"INSERT INTO bookings ({cols}) VALUES ({_placeholders(len(fields))})",
            list(fields.values()),
        )

    def insert_history(
        self,
        conn: sqlite3.Connection,
        *,
        booking_id: str,
        from_status: Optional[str],
        to_status: str,
        event: str,
        actor_role: str,
        actor_id: Optional[str],
    ) -> None:
        conn.execute(
            """
            INSERT INTO booking_status_history (
                booking_id, from_status, to_status, event,
                actor_role, actor_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (booking_id, from_status, to_status, event, actor_role, actor_id, utc_now_iso()),
        )

    # ==================================================
    # Versioned update
    # ==================================================
    def compare_and_swap(
        self,
        *,
        booking_id: str,
        expected_version: int,
        fields: Dict[str, Any],
        require_null: Sequence[str] = (),
        history: Optional[Dict[str, Any]] = None,
    ) -> Booking:
        """
        UPDATE ... WHERE version = expected_version, plus the optional
        history row, in one transaction. Zero rows updated means someone
        else won the race: Conflict (or BookingNotFound if the row is gone).
        """
        sets = dict(fields)
        sets["updated_at"] = utc_now_iso()
        assignments = ", ".join(f"{k} = ?" for k in sets.keys())

        where = "booking_id = ? AND version = ?"
        for col in require_null:
            where += f" AND {col} IS NULL"

        conn = self.open_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cur = conn.execute(
                    f"UPDATE bookings SET {assignments}, version = version + 1 WHERE {where}",
                    (*sets.values(), booking_id, expected_version),
                )
                if cur.rowcount == 0:
                    exists = conn.execute(
                        "SELECT 1 FROM bookings WHERE booking_id = ?",
                        (booking_id,),
                    ).fetchone()
                    conn.execute("ROLLBACK")
                    if not exists:
                        raise BookingNotFound(f"booking {booking_id} not found")
                    raise Conflict(
                        f"booking {booking_id} changed concurrently",
                        booking_id=booking_id,
                    )

                if history:
                    self.insert_history(conn, booking_id=booking_id, **history)

                conn.execute("COMMIT")
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            booking = self.fetch_booking(booking_id, conn=conn)
            if booking is None:
                raise RuntimeError("Booking disappeared after update")
            return booking
        finally:
            conn.close()
