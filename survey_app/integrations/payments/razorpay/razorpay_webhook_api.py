# survey_app/integrations/payments/razorpay/razorpay_webhook_api.py
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.common.http_errors import to_http_exception
from survey_app.config.settings import AppSettings
from survey_app.dependencies import build_coordinator, get_gateway, get_settings
from survey_app.domain.errors import BookingDomainError
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)
from survey_app.integrations.payments.razorpay.razorpay_webhook_service import (
    RazorpayWebhookService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/razorpay", tags=["razorpay_webhook"])


def get_webhook_service(
    settings: AppSettings = Depends(get_settings),
    gateway=Depends(get_gateway),
) -> RazorpayWebhookService:
    return RazorpayWebhookService(
        coordinator=build_coordinator(settings, gateway),
        repo=BookingRepository(settings.db_path),
        attempts=PaymentAttemptRepository(settings.db_path),
    )


@router.post("/webhook", response_class=PlainTextResponse)
async def razorpay_webhook(
    request: Request,
    gateway=Depends(get_gateway),
    service: RazorpayWebhookService = Depends(get_webhook_service),
) -> PlainTextResponse:
    body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature", "")

    if not gateway.verify_webhook_signature(body, signature):
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        result = service.handle_event(event)
    except BookingDomainError as e:
        # non-2xx makes Razorpay redeliver
        raise to_http_exception(e)

    logger.info("razorpay webhook event=%s result=%s", event.get("event"), result)
    return PlainTextResponse("ok", status_code=200)
