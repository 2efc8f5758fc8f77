import logging

from core.celery import celery_app
from core.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to_email: str, subject: str, body: str):
    """
    Send email asynchronously with Celery.
    Retries up to 3 times on failure.
    """
    from services.email import build_message, deliver

    # Skip email sending in testing mode or without credentials
    if settings.TESTING or not settings.SMTP_PASSWORD:
        logger.info("Email to %s skipped (subject: %s)", to_email, subject)
        return {"status": "skipped", "to": to_email, "subject": subject}

    try:
        deliver(build_message(to_email, subject, body))
        return {"status": "sent", "to": to_email, "subject": subject}
    except Exception as exc:
        logger.warning("Failed to send email to %s: %s", to_email, exc)
        # Retry with exponential backoff
        countdown = min(2 ** self.request.retries, 60)  # Max 60 seconds
        raise self.retry(exc=exc, countdown=countdown)
