import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.clock import utcnow
from core.config import settings
from core.exceptions import DeliveryError
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def smtp_configured() -> bool:
    return bool(settings.SMTP_USERNAME and settings.SMTP_PASSWORD)


def send_email(to_email: str, subject: str, html: str) -> None:
    """
    Queue an email on the Celery worker and return immediately.
    Raises DeliveryError when the message cannot be handed to the broker.
    """
    if not to_email or not subject:
        raise DeliveryError("Invalid email parameters: missing 'to' or 'subject'")
    try:
        send_email_task.delay(to_email, subject, html)
    except Exception as exc:
        logger.warning("Could not queue email to %s: %s", to_email, exc)
        raise DeliveryError(f"Could not queue email: {exc}") from exc
    logger.info("Email to %s queued | Subject: %s", to_email, subject[:50])


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a template from templates/ with the shared site context."""
    template = _templates_env.get_template(template_path)
    base = {"site_url": settings.SITE_URL, "year": utcnow().year}
    return template.render(**base, **context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send it through send_email."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def deliver_via_smtp(to_email: str, subject: str, html: str) -> bool:
    """Blocking SMTP delivery; runs on the worker. Returns False when SMTP is not configured."""
    if not smtp_configured():
        logger.error("Cannot send email to %s - SMTP_USERNAME/SMTP_PASSWORD not configured", to_email)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content("This message requires an HTML-capable mail client.")
    msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as server:
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    logger.info("Email sent to %s", to_email)
    return True
