# survey_app/notifications/external/webhook_sender.py
"""
WebhookNotificationSender

- Thin wrapper that POSTs one notification to the delivery service
  (socket / push / email fan-out lives behind that URL).
- With no URL configured, sending is a logged no-op so local runs work.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)


class WebhookNotificationSender:
    def __init__(self, webhook_url: str = "", *, timeout: float = 5.0) -> None:
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def send(
        self,
        *,
        recipient_type: str,
        recipient_id: str,
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        """
        Raises RuntimeError on delivery failure; the dispatcher records it
        on the job.
        """
        if not self.webhook_url:
            logger.info(
                "[notify:dry] %s %s <- %s %s",
                recipient_type,
                recipient_id,
                event_type,
                payload,
            )
            return

        body = {
            "recipient_type": recipient_type,
            "recipient_id": recipient_id,
            "event_type": event_type,
            "payload": payload,
        }

        try:
            resp = requests.post(self.webhook_url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise RuntimeError(f"notification webhook error: {e}") from e

        if resp.status_code >= 300:
            raise RuntimeError(
                f"notification webhook failed: status={resp.status_code}, body={resp.text[:200]}"
            )
