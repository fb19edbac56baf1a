"""
DEV tools API

/dev/ping
/dev/bookings/{booking_id}/fake-advance-payment
/dev/service-prices
/dev/reconcile

- Stand-ins for the gateway round trip and the cron jobs during local runs
- Only enabled when fake payments are enabled (FAKE_PAYMENTS_ENABLED or
  DEV_MODE=1); otherwise every route answers 404
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from survey_app.booking.dtos import BookingDTO
from survey_app.booking.services.booking_view_service import build_booking_view
from survey_app.common.http_errors import to_http_exception
from survey_app.config.settings import AppSettings
from survey_app.dependencies import (
    get_payment_coordinator,
    get_reconciliation_service,
    get_settings,
)
from survey_app.domain.booking_status import ActorRole
from survey_app.domain.errors import BookingDomainError
from survey_app.domain.models import Actor
from survey_app.integrations.payments.payment_coordinator import PaymentCoordinator
from survey_app.integrations.payments.reconciliation_service import (
    PaymentReconciliationService,
)
from survey_app.pricing.pricing_client import TablePricingClient

router = APIRouter(tags=["dev"])

_DEV_VIEWER = Actor(role=ActorRole.ADMIN, actor_id="dev")


# --------------------------------------------------
# Shared
# --------------------------------------------------
def require_dev_access(settings: AppSettings = Depends(get_settings)) -> None:
    if not settings.fake_payments_enabled:
        raise HTTPException(status_code=404, detail="Not Found")


class ServicePriceBody(BaseModel):
    service_id: str = Field(min_length=1)
    vendor_id: str = "*"
    base_service_fee: int = Field(ge=0)
    travel_charges: int = Field(0, ge=0)
    gst: int = Field(0, ge=0)


# --------------------------------------------------
# Endpoints
# --------------------------------------------------
@router.get("/ping")
def ping(_: None = Depends(require_dev_access)):
    return {"ok": True, "mode": "DEV"}


@router.post("/bookings/{booking_id}/fake-advance-payment", response_model=BookingDTO)
def fake_advance_payment(
    booking_id: str,
    _: None = Depends(require_dev_access),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """
    Marks the advance as paid without the gateway and fires
    ADVANCE_CONFIRMED (PENDING -> ASSIGNED).
    """
    try:
        booking = coordinator.fake_advance_payment(booking_id)
    except BookingDomainError as e:
        raise to_http_exception(e)
    return build_booking_view(booking, _DEV_VIEWER)


@router.post("/service-prices")
def upsert_service_price(
    body: ServicePriceBody,
    _: None = Depends(require_dev_access),
    settings: AppSettings = Depends(get_settings),
):
    pricing = TablePricingClient(settings.db_path)
    pricing.upsert_price(
        body.service_id,
        vendor_id=body.vendor_id,
        base_service_fee=body.base_service_fee,
        travel_charges=body.travel_charges,
        gst=body.gst,
    )
    return {"ok": True, "service_id": body.service_id, "vendor_id": body.vendor_id}


@router.post("/reconcile")
def run_reconciliation(
    _: None = Depends(require_dev_access),
    service: PaymentReconciliationService = Depends(get_reconciliation_service),
):
    return service.sweep()
