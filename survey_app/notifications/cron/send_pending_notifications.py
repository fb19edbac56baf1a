import os

from survey_app.config.settings import AppSettings
from survey_app.notifications.external.webhook_sender import WebhookNotificationSender
from survey_app.notifications.repository.notification_job_repo import (
    NotificationJobRepository,
)
from survey_app.notifications.services.notification_service import NotificationDispatcher

"""
notification_jobs cron entry point.

- loads settings (.env included)
- calls NotificationDispatcher.send_pending_jobs
- prints the result, nothing else
"""


def send_pending_notifications(limit: int = 50):
    """
    dry_run is controlled by NOTIFICATION_CRON_DRY_RUN (true / false).
    """
    settings = AppSettings.from_env()

    dry_run_env = os.getenv("NOTIFICATION_CRON_DRY_RUN", "false").lower()
    dry_run = dry_run_env in ("1", "true", "yes")

    dispatcher = NotificationDispatcher(
        job_repo=NotificationJobRepository(settings.db_path),
        sender=WebhookNotificationSender(settings.notification_webhook_url),
    )
    return dispatcher.send_pending_jobs(limit=limit, dry_run=dry_run)


if __name__ == "__main__":
    result = send_pending_notifications(limit=50)
    print("[send_pending_notifications] result:", result)
