# survey_app/notifications/services/notification_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from survey_app.notifications.external.webhook_sender import WebhookNotificationSender
from survey_app.notifications.repository.notification_job_repo import (
    NotificationJobRepository,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Fire-and-forget notifications for booking side effects.

    notify() only enqueues into the outbox. Nothing in the booking flow
    waits for delivery, and an enqueue failure never undoes the state
    change that caused it.
    """

    def __init__(self, *, job_repo: Optional[NotificationJobRepository] = None) -> None:
        self._job_repo = job_repo or NotificationJobRepository()

    def notify(
        self,
        recipient_type: str,
        recipient_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        booking_id: Optional[str] = None,
    ) -> Optional[int]:
        try:
            return self._job_repo.insert_job(
                booking_id=booking_id,
                recipient_type=recipient_type,
                recipient_id=recipient_id,
                event_type=event_type,
                payload=payload,
            )
        except Exception as e:
            logger.warning(
                "notification enqueue failed booking_id=%s event=%s: %s",
                booking_id,
                event_type,
                e,
            )
            return None


class NotificationDispatcher:
    """
    Delivers PENDING outbox jobs (cron).

    At-least-once: a job is retried on the next run until it is SENT or
    has failed MAX_ATTEMPTS times.
    """

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        *,
        job_repo: Optional[NotificationJobRepository] = None,
        sender: Optional[WebhookNotificationSender] = None,
    ) -> None:
        self._job_repo = job_repo or NotificationJobRepository()
        self._sender = sender or WebhookNotificationSender()

    def send_pending_jobs(self, limit: int = 50, dry_run: bool = False) -> Dict[str, Any]:
        jobs = self._job_repo.list_pending_jobs(limit=limit)

        sent = failed = 0
        results: List[Dict[str, Any]] = []

        for job in jobs:
            job_id = int(job["job_id"])
            try:
                if not dry_run:
                    self._sender.send(
                        recipient_type=job["recipient_type"],
                        recipient_id=job["recipient_id"],
                        event_type=job["event_type"],
                        payload=job["payload"],
                    )
                    self._job_repo.mark_sent(job_id)
                sent += 1
                results.append({"job_id": job_id, "result": "SENT", "error": None})

            except Exception as e:
                self._job_repo.mark_attempt_failed(
                    job_id, str(e), max_attempts=self.MAX_ATTEMPTS
                )
                failed += 1
                results.append({"job_id": job_id, "result": "FAILED", "error": str(e)})
                logger.warning("notification job %s failed: %s", job_id, e)

        return {
            "processed": len(jobs),
            "sent": sent,
            "failed": failed,
            "dry_run": dry_run,
            "results": results,
        }
