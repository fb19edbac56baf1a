# survey_app/dependencies.py
"""
DI factories for the routers.

Everything is built from one AppSettings instance, so tests swap the
database and the gateway through app.dependency_overrides on
get_settings / get_gateway.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from survey_app.booking.repository.booking_repo import BookingRepository
from survey_app.booking.services.active_booking_guard import ActiveBookingGuard
from survey_app.booking.services.booking_lifecycle_service import (
    BookingLifecycleService,
)
from survey_app.booking.services.booking_service import BookingService
from survey_app.config.settings import AppSettings
from survey_app.integrations.payments.payment_attempt_repo import (
    PaymentAttemptRepository,
)
from survey_app.integrations.payments.payment_coordinator import PaymentCoordinator
from survey_app.integrations.payments.razorpay.razorpay_client import RazorpayClient
from survey_app.integrations.payments.refund_service import PaymentRefundService
from survey_app.integrations.payments.reconciliation_service import (
    PaymentReconciliationService,
)
from survey_app.notifications.repository.notification_job_repo import (
    NotificationJobRepository,
)
from survey_app.notifications.services.notification_service import NotificationService
from survey_app.pricing.pricing_client import TablePricingClient


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings.from_env()


def get_gateway(settings: AppSettings = Depends(get_settings)):
    return RazorpayClient(settings)


def build_lifecycle(settings: AppSettings) -> BookingLifecycleService:
    return BookingLifecycleService(
        repo=BookingRepository(settings.db_path),
        notifier=NotificationService(
            job_repo=NotificationJobRepository(settings.db_path)
        ),
    )


def build_coordinator(settings: AppSettings, gateway) -> PaymentCoordinator:
    return PaymentCoordinator(
        settings=settings,
        gateway=gateway,
        lifecycle=build_lifecycle(settings),
        attempts=PaymentAttemptRepository(settings.db_path),
    )


def get_payment_coordinator(
    settings: AppSettings = Depends(get_settings),
    gateway=Depends(get_gateway),
) -> PaymentCoordinator:
    return build_coordinator(settings, gateway)


def get_booking_service(
    settings: AppSettings = Depends(get_settings),
    gateway=Depends(get_gateway),
) -> BookingService:
    repo = BookingRepository(settings.db_path)
    return BookingService(
        repo=repo,
        guard=ActiveBookingGuard(repo=repo),
        lifecycle=build_lifecycle(settings),
        coordinator=build_coordinator(settings, gateway),
        pricing=TablePricingClient(settings.db_path),
        attempts=PaymentAttemptRepository(settings.db_path),
        currency=settings.currency,
    )


def get_reconciliation_service(
    settings: AppSettings = Depends(get_settings),
    gateway=Depends(get_gateway),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        settings=settings,
        gateway=gateway,
        coordinator=build_coordinator(settings, gateway),
        repo=BookingRepository(settings.db_path),
        lifecycle=build_lifecycle(settings),
    )


def get_refund_service(
    settings: AppSettings = Depends(get_settings),
    gateway=Depends(get_gateway),
) -> PaymentRefundService:
    return PaymentRefundService(
        gateway=gateway,
        attempts=PaymentAttemptRepository(settings.db_path),
    )
