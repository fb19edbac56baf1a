# survey_app/notifications/repository/notification_job_repo.py
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from survey_app.common.time_utils import utc_now_iso
from survey_app.db.core import open_connection


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["payload"] = json.loads(data.pop("payload_json") or "{}")
    return data


class NotificationJobRepository:
    """
    notification_jobs (outbox) Repository.

    Responsibilities:
      - CRUD on notification_jobs only
      - no decision about when or whether to send
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self.db_path)

    # --------------------------------------------------
    # INSERT
    # --------------------------------------------------
    def insert_job(
        self,
        *,
        booking_id: Optional[str],
        recipient_type: str,
        recipient_id: str,
        event_type: str,
        payload: Dict[str, Any],
    ) -> int:
        now_iso = utc_now_iso()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO notification_jobs (
                    booking_id,
                    recipient_type,
                    recipient_id,
                    event_type,
                    payload_json,
                    status,
                    attempt_count,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, 'PENDING', 0, ?, ?)
                """,
                (
                    booking_id,
                    recipient_type,
                    recipient_id,
                    event_type,
                    json.dumps(payload, ensure_ascii=False, default=str),
                    now_iso,
                    now_iso,
                ),
            )
            return int(cur.lastrowid)
        finally:
            conn.close()

    # --------------------------------------------------
    # SELECT
    # --------------------------------------------------
    def list_pending_jobs(self, *, limit: int = 50) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM notification_jobs
                WHERE status = 'PENDING'
                ORDER BY job_id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [_row_to_dict(r) for r in rows]
        finally:
            conn.close()

    def list_jobs_by_booking(self, booking_id: str) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM notification_jobs WHERE booking_id = ? ORDER BY job_id ASC",
                (booking_id,),
            ).fetchall()
            return [_row_to_dict(r) for r in rows]
        finally:
            conn.close()

    # --------------------------------------------------
    # UPDATE
    # --------------------------------------------------
    def mark_sent(self, job_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE notification_jobs
                SET status = 'SENT',
                    attempt_count = attempt_count + 1,
                    last_error = NULL,
                    updated_at = ?
                WHERE job_id = ?
                """,
                (utc_now_iso(), job_id),
            )
        finally:
            conn.close()

    def mark_attempt_failed(self, job_id: int, error: str, *, max_attempts: int) -> None:
        """
        Records the error; the job stays PENDING (at-least-once) until
        max_attempts is reached, then becomes FAILED.
        """
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE notification_jobs
                SET attempt_count = attempt_count + 1,
                    last_error = ?,
                    status = CASE
                        WHEN attempt_count + 1 >= ? THEN 'FAILED'
                        ELSE 'PENDING'
                    END,
                    updated_at = ?
                WHERE job_id = ?
                """,
                (error[:500], max_attempts, utc_now_iso(), job_id),
            )
        finally:
            conn.close()
