# survey_app/integrations/payments/payment_attempt_repo.py
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from survey_app.common.time_utils import utc_now_iso
from survey_app.db.core import open_connection

# outcomes where a captured payment is not backing any booking phase
REFUNDABLE_OUTCOMES = ("paid_after_terminal", "duplicate_payment")


class PaymentAttemptRepository:
    """
    payment_attempts Repository (append-only).

    Every gateway interaction lands here, including failures, so a stuck
    phase can always be explained from the table.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self.db_path)

    def record(
        self,
        *,
        booking_id: str,
        phase: str,
        outcome: str,
        gateway_order_id: Optional[str] = None,
        gateway_payment_id: Optional[str] = None,
        amount: Optional[int] = None,
        error: Optional[str] = None,
        gateway_refund_id: Optional[str] = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO payment_attempts (
                    booking_id,
                    phase,
                    outcome,
                    gateway_order_id,
                    gateway_payment_id,
                    amount,
                    error,
                    gateway_refund_id,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    booking_id,
                    phase,
                    outcome,
                    gateway_order_id,
                    gateway_payment_id,
                    amount,
                    error[:500] if error else None,
                    gateway_refund_id,
                    utc_now_iso(),
                ),
            )
            return int(cur.lastrowid)
        finally:
            conn.close()

    def list_by_booking(self, booking_id: str) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM payment_attempts
                WHERE booking_id = ?
                ORDER BY attempt_id ASC
                """,
                (booking_id,),
            ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()

    def fetch_attempt(self, attempt_id: int) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM payment_attempts WHERE attempt_id = ?",
                (attempt_id,),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def list_pending_refunds(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Money we hold without a booking to show for it: payments captured
        after the booking closed, or a second payment for a paid phase.
        One row per payment id, skipping payments already refunded.
        """
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT a.*
                FROM payment_attempts a
                WHERE a.outcome IN (?, ?)
                  AND a.gateway_payment_id IS NOT NULL
                  AND a.attempt_id = (
                      SELECT MIN(b.attempt_id)
                      FROM payment_attempts b
                      WHERE b.gateway_payment_id = a.gateway_payment_id
                        AND b.outcome IN (?, ?)
                  )
                  AND NOT EXISTS (
                      SELECT 1
                      FROM payment_attempts r
                      WHERE r.gateway_payment_id = a.gateway_payment_id
                        AND r.outcome = 'refunded'
                  )
                ORDER BY a.attempt_id ASC
                LIMIT ?
                """,
                (*REFUNDABLE_OUTCOMES, *REFUNDABLE_OUTCOMES, limit),
            ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()

    def find_refund(self, gateway_payment_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT *
                FROM payment_attempts
                WHERE gateway_payment_id = ?
                  AND outcome = 'refunded'
                ORDER BY attempt_id ASC
                LIMIT 1
                """,
                (gateway_payment_id,),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()
