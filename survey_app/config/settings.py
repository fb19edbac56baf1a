# survey_app/config/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class AppSettings:
    """
    Process-wide, read-only configuration.

    Built once (from_env) and injected into the gateway adapter, the
    payment coordinator and the services. Nothing below the API layer
    reads os.environ directly.
    """

    db_path: Path
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    currency: str = "INR"
    gateway_timeout_sec: float = 10.0
    gateway_max_retries: int = 2
    fake_payments_enabled: bool = False
    stale_payment_minutes: int = 30
    pending_expiry_hours: int = 0
    notification_webhook_url: str = ""
    frontend_url: str = ""

    @classmethod
    def from_env(cls) -> "AppSettings":
        load_dotenv()

        return cls(
            db_path=Path(os.getenv("DB_PATH", "app.db")).resolve(),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", "").strip(),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", "").strip(),
            razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET", "").strip(),
            currency=os.getenv("PAYMENT_CURRENCY", "INR").strip().upper(),
            gateway_timeout_sec=float(os.getenv("GATEWAY_TIMEOUT_SEC", "10")),
            gateway_max_retries=int(os.getenv("GATEWAY_MAX_RETRIES", "2")),
            # DEV_MODE=1 implies the fake payment bypass, same as the dev tools
            fake_payments_enabled=(
                _env_bool("FAKE_PAYMENTS_ENABLED") or os.getenv("DEV_MODE", "0") == "1"
            ),
            stale_payment_minutes=int(os.getenv("STALE_PAYMENT_MINUTES", "30")),
            pending_expiry_hours=int(os.getenv("PENDING_EXPIRY_HOURS", "0")),
            notification_webhook_url=os.getenv("NOTIFICATION_WEBHOOK_URL", "").strip(),
            frontend_url=os.getenv("FRONTEND_URL", "").strip(),
        )
