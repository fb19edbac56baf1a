from survey_app.config.settings import AppSettings
from survey_app.dependencies import build_coordinator, build_lifecycle
from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.integrations.payments.razorpay.razorpay_client import RazorpayClient
from survey_app.integrations.payments.reconciliation_service import (
    PaymentReconciliationService,
)

"""
Stale payment reconciliation cron entry point.

- loads settings (.env included)
- calls PaymentReconciliationService.sweep
- prints the result, nothing else
"""


def reconcile_stale_payments(limit: int = 100):
    settings = AppSettings.from_env()
    gateway = RazorpayClient(settings)

    service = PaymentReconciliationService(
        settings=settings,
        gateway=gateway,
        coordinator=build_coordinator(settings, gateway),
        repo=BookingRepository(settings.db_path),
        lifecycle=build_lifecycle(settings),
    )
    return service.sweep(limit=limit)


if __name__ == "__main__":
    result = reconcile_stale_payments(limit=100)
    print("[reconcile_stale_payments] result:", result)
