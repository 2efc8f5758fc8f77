import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)


# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml", "txt"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue the email on Celery, falling back to sending it directly.
    Returns immediately when the task is queued.
    """
    if settings.EMAIL_USE_CELERY:
        try:
            send_email_task.delay(to_email, subject, body)
            logger.debug("Email task queued to Celery for %s", to_email)
            return
        except Exception:
            logger.warning("Celery not available, sending email to %s directly", to_email, exc_info=True)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def build_message(to_email: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{settings.BAKERY_NAME} <{settings.SMTP_FROM or settings.SMTP_USERNAME}>"
    msg["To"] = to_email
    msg.set_content(body)
    return msg


def deliver(msg: EmailMessage) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    """Synchronous SMTP delivery; errors propagate to the caller."""
    if not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured, email to %s not sent. Subject: %s", to_email, subject)
        logger.debug("Email body:\n%s", body)
        return

    deliver(build_message(to_email, subject, body))
    logger.info("Email sent to %s", to_email)
