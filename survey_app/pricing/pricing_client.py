# survey_app/pricing/pricing_client.py
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Protocol

from survey_app.db.core import open_connection
from survey_app.domain.errors import ValidationError
from survey_app.domain.money import Charges


class PricingClient(Protocol):
    def compute_charges(
        self,
        service_id: str,
        vendor_id: str,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> Charges: ...


class TablePricingClient:
    """
    Default pricing collaborator backed by service_prices.

    A vendor-specific row wins over the '*' row for the same service.
    Location is accepted for interface parity; the table prices do not
    depend on it.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self.db_path)

    def compute_charges(
        self,
        service_id: str,
        vendor_id: str,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> Charges:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT base_service_fee, travel_charges, gst
                FROM service_prices
                WHERE service_id = ?
                  AND vendor_id IN (?, '*')
                ORDER BY CASE WHEN vendor_id = '*' THEN 1 ELSE 0 END
                LIMIT 1
                """,
                (service_id, vendor_id),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise ValidationError(f"no price for service {service_id}")

        base = int(row["base_service_fee"])
        travel = int(row["travel_charges"])
        gst = int(row["gst"])
        return Charges(
            base_service_fee=base,
            travel_charges=travel,
            gst=gst,
            total_amount=base + travel + gst,
        )

    def upsert_price(
        self,
        service_id: str,
        *,
        base_service_fee: int,
        travel_charges: int = 0,
        gst: int = 0,
        vendor_id: str = "*",
    ) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO service_prices (
                    service_id, vendor_id, base_service_fee, travel_charges, gst
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (service_id, vendor_id) DO UPDATE SET
                    base_service_fee = excluded.base_service_fee,
                    travel_charges = excluded.travel_charges,
                    gst = excluded.gst
                """,
                (service_id, vendor_id, base_service_fee, travel_charges, gst),
            )
        finally:
            conn.close()
