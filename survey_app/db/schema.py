# survey_app/db/schema.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from survey_app.db.core import open_connection

logger = logging.getLogger(__name__)


# All statements are CREATE ... IF NOT EXISTS: running this against an
# existing database only adds what is missing, never drops or rewrites.
SCHEMA_STATEMENTS = [
    # -------------------------------
    # bookings (payment + report embedded, same lifetime)
    # -------------------------------
    """
    CREATE TABLE IF NOT EXISTS bookings (
        booking_id                   TEXT        PRIMARY KEY,
        user_id                      TEXT        NOT NULL,
        vendor_id                    TEXT        NOT NULL,
        service_id                   TEXT        NOT NULL,
        status                       TEXT        NOT NULL DEFAULT 'PENDING',
        scheduled_date               TEXT        NOT NULL,
        scheduled_time               TEXT        NOT NULL,
        address_json                 TEXT        NOT NULL,
        notes                        TEXT,

        base_service_fee             INTEGER     NOT NULL,
        travel_charges               INTEGER     NOT NULL DEFAULT 0,
        gst                          INTEGER     NOT NULL DEFAULT 0,
        total_amount                 INTEGER     NOT NULL,
        advance_amount               INTEGER     NOT NULL,
        remaining_amount             INTEGER     NOT NULL,
        currency                     TEXT        NOT NULL DEFAULT 'INR',
        advance_paid                 INTEGER     NOT NULL DEFAULT 0,
        remaining_paid               INTEGER     NOT NULL DEFAULT 0,
        advance_gateway_order_id     TEXT,
        advance_gateway_payment_id   TEXT,
        advance_paid_at              TEXT,
        remaining_gateway_order_id   TEXT,
        remaining_gateway_payment_id TEXT,
        remaining_paid_at            TEXT,

        report_json                  TEXT,
        report_uploaded_at           TEXT,

        cancellation_reason          TEXT,
        cancelled_by                 TEXT,
        assigned_at                  TEXT,
        accepted_at                  TEXT,
        visited_at                   TEXT,
        completed_at                 TEXT,
        cancelled_at                 TEXT,

        created_at                   TEXT        NOT NULL,
        updated_at                   TEXT        NOT NULL,
        version                      INTEGER     NOT NULL DEFAULT 1,

        CHECK (advance_amount + remaining_amount = total_amount),
        CHECK (remaining_paid = 0 OR advance_paid = 1)
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_bookings_user_status ON bookings(user_id, status);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_vendor_status ON bookings(vendor_id, status);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_advance_order ON bookings(advance_gateway_order_id);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_remaining_order ON bookings(remaining_gateway_order_id);",
    # one non-terminal booking per user, enforced by the database as well
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_bookings_one_active_per_user
        ON bookings(user_id)
        WHERE status NOT IN ('COMPLETED', 'CANCELLED', 'REJECTED', 'FAILED');
    """,
    # -------------------------------
    # booking_status_history (append-only)
    # -------------------------------
    """
    CREATE TABLE IF NOT EXISTS booking_status_history (
        history_id      INTEGER     PRIMARY KEY AUTOINCREMENT,
        booking_id      TEXT        NOT NULL,
        from_status     TEXT,
        to_status       TEXT        NOT NULL,
        event           TEXT        NOT NULL,
        actor_role      TEXT        NOT NULL,
        actor_id        TEXT,
        created_at      TEXT        NOT NULL,
        FOREIGN KEY (booking_id) REFERENCES bookings(booking_id)
    );
    """,
    # -------------------------------
    # payment_attempts (append-only gateway audit)
    # -------------------------------
    """
    CREATE TABLE IF NOT EXISTS payment_attempts (
        attempt_id          INTEGER     PRIMARY KEY AUTOINCREMENT,
        booking_id          TEXT        NOT NULL,
        phase               TEXT        NOT NULL,
        outcome             TEXT        NOT NULL,
        gateway_order_id    TEXT,
        gateway_payment_id  TEXT,
        amount              INTEGER,
        error               TEXT,
        gateway_refund_id   TEXT,
        created_at          TEXT        NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_payment_attempts_booking ON payment_attempts(booking_id);",
    "CREATE INDEX IF NOT EXISTS ix_payment_attempts_payment ON payment_attempts(gateway_payment_id);",
    # -------------------------------
    # notification_jobs (outbox)
    # -------------------------------
    """
    CREATE TABLE IF NOT EXISTS notification_jobs (
        job_id          INTEGER     PRIMARY KEY AUTOINCREMENT,
        booking_id      TEXT,
        recipient_type  TEXT        NOT NULL,
        recipient_id    TEXT        NOT NULL,
        event_type      TEXT        NOT NULL,
        payload_json    TEXT        NOT NULL,
        status          TEXT        NOT NULL DEFAULT 'PENDING',
        attempt_count   INTEGER     NOT NULL DEFAULT 0,
        last_error      TEXT,
        created_at      TEXT        NOT NULL,
        updated_at      TEXT        NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_notification_jobs_status ON notification_jobs(status);",
    # -------------------------------
    # service_prices (default pricing collaborator)
    # -------------------------------
    """
    CREATE TABLE IF NOT EXISTS service_prices (
        service_id          TEXT        NOT NULL,
        vendor_id           TEXT        NOT NULL DEFAULT '*',
        base_service_fee    INTEGER     NOT NULL,
        travel_charges      INTEGER     NOT NULL DEFAULT 0,
        gst                 INTEGER     NOT NULL DEFAULT 0,
        PRIMARY KEY (service_id, vendor_id)
    );
    """,
]


def init_schema(db_path: Optional[Path] = None) -> None:
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = open_connection(db_path)
    try:
        for stmt in SCHEMA_STATEMENTS:
            conn.execute(stmt)
    finally:
        conn.close()

    logger.info("schema ready: %s", db_path)
