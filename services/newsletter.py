import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.exceptions import DeliveryError, ValidationFailedError
from models.subscriber import Subscriber
from services.email import send_templated_email

logger = logging.getLogger(__name__)


def subscribe(db: Session, email: str) -> Subscriber:
    email = email.strip().lower()
    subscriber = db.scalar(select(Subscriber).where(Subscriber.email == email))
    if subscriber is None:
        subscriber = Subscriber(email=email, is_active=True)
        db.add(subscriber)
    else:
        subscriber.is_active = True
    db.commit()
    db.refresh(subscriber)
    return subscriber


def unsubscribe(db: Session, email: str) -> bool:
    subscriber = db.scalar(select(Subscriber).where(Subscriber.email == email.strip().lower()))
    if subscriber is None or not subscriber.is_active:
        return False
    subscriber.is_active = False
    db.commit()
    return True


def subscriber_count(db: Session) -> int:
    return db.scalar(select(func.count(Subscriber.id)).where(Subscriber.is_active.is_(True))) or 0


def broadcast(db: Session, subject: str, content: str, preview_text: str | None = None) -> dict:
    """Send one newsletter to every active subscriber; one failure does not stop the rest."""
    if not subject or not subject.strip() or not content or not content.strip():
        raise ValidationFailedError("Subject and content are required")

    recipients = list(db.scalars(
        select(Subscriber.email).where(Subscriber.is_active.is_(True)).order_by(Subscriber.id)
    ))
    sent = failed = 0
    for email in recipients:
        try:
            send_templated_email(
                email,
                subject,
                "emails/newsletter.html",
                {"content": content, "preheader": preview_text, "email": email},
            )
            sent += 1
        except DeliveryError as exc:
            failed += 1
            logger.warning("Newsletter to %s failed: %s", email, exc)
    logger.info("Newsletter '%s' sent to %d/%d subscribers", subject, sent, len(recipients))
    return {"sent": sent, "failed": failed, "total": len(recipients)}
