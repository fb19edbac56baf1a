# tests/test_notifications.py
from survey_app.notifications.external.webhook_sender import WebhookNotificationSender
from survey_app.notifications.repository.notification_job_repo import (
    NotificationJobRepository,
)
from survey_app.notifications.services.notification_service import (
    NotificationDispatcher,
    NotificationService,
)


class RecordingSender:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    def send(self, *, recipient_type, recipient_id, event_type, payload):
        if self.fail:
            raise RuntimeError("delivery down")
        self.sent.append((recipient_type, recipient_id, event_type, payload))


def _enqueue(settings, booking_id="bk_1"):
    service = NotificationService(job_repo=NotificationJobRepository(settings.db_path))
    return service.notify(
        "USER",
        "user_1",
        "booking.assigned",
        {"booking_id": booking_id, "status": "ASSIGNED"},
        booking_id=booking_id,
    )


def test_notify_enqueues_pending_job(settings):
    job_id = _enqueue(settings)
    assert job_id

    jobs = NotificationJobRepository(settings.db_path).list_pending_jobs()
    assert len(jobs) == 1
    assert jobs[0]["payload"] == {"booking_id": "bk_1", "status": "ASSIGNED"}
    assert jobs[0]["status"] == "PENDING"


def test_dispatcher_sends_and_marks_sent(settings):
    _enqueue(settings)
    repo = NotificationJobRepository(settings.db_path)
    sender = RecordingSender()

    result = NotificationDispatcher(job_repo=repo, sender=sender).send_pending_jobs()

    assert result["sent"] == 1
    assert sender.sent[0][2] == "booking.assigned"
    assert repo.list_pending_jobs() == []
    assert repo.list_jobs_by_booking("bk_1")[0]["status"] == "SENT"


def test_dry_run_sends_nothing(settings):
    _enqueue(settings)
    repo = NotificationJobRepository(settings.db_path)
    sender = RecordingSender()

    result = NotificationDispatcher(job_repo=repo, sender=sender).send_pending_jobs(dry_run=True)

    assert result["dry_run"] is True
    assert sender.sent == []
    assert len(repo.list_pending_jobs()) == 1


def test_failed_delivery_retries_then_gives_up(settings):
    _enqueue(settings)
    repo = NotificationJobRepository(settings.db_path)
    dispatcher = NotificationDispatcher(job_repo=repo, sender=RecordingSender(fail=True))

    for _ in range(NotificationDispatcher.MAX_ATTEMPTS - 1):
        assert dispatcher.send_pending_jobs()["failed"] == 1
        assert len(repo.list_pending_jobs()) == 1

    dispatcher.send_pending_jobs()
    job = repo.list_jobs_by_booking("bk_1")[0]
    assert job["status"] == "FAILED"
    assert job["attempt_count"] == NotificationDispatcher.MAX_ATTEMPTS
    assert job["last_error"] == "delivery down"


def test_sender_without_url_is_a_noop():
    sender = WebhookNotificationSender("")
    assert sender.is_configured() is False
    sender.send(
        recipient_type="USER",
        recipient_id="user_1",
        event_type="booking.cancelled",
        payload={},
    )
