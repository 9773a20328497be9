import logging

from core.celery import celery_app
from core.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to_email: str, subject: str, html: str):
    """
    Send email asynchronously with Celery.
    Retries up to 3 times with exponential backoff on SMTP failure.
    """
    from services.email import deliver_via_smtp

    if settings.TESTING:
        logger.debug("Email to %s skipped in testing mode: %s", to_email, subject)
        return {"status": "skipped", "to": to_email}

    try:
        sent = deliver_via_smtp(to_email, subject, html)
    except Exception as exc:
        countdown = min(2 ** self.request.retries, 60)
        logger.warning(
            "Email to %s failed (attempt %s/%s), retrying in %ss: %s",
            to_email, self.request.retries + 1, self.max_retries, countdown, exc,
        )
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "sent" if sent else "not_configured", "to": to_email, "subject": subject}
