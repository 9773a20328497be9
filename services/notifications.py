"""In-app notifications and transactional email.

Lifecycle side effects are collected as :class:`Notice` objects and handed to
:func:`dispatch` only after the state change has been committed. Dispatch is
at-most-once and never raises: a failing insert or mail queue is logged and
skipped so that no order transition is ever undone by a notification problem.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import NotFoundError
from models.notification import Notification
from models.user import User, Role
from services import email as email_service

logger = logging.getLogger(__name__)

STATUS_EMOJI = {
    "pending": "📦", "confirmed": "✅", "processing": "⚙️", "shipped": "🚚", "at_station": "📍",
    "reached_destination": "🎯", "delivered": "🎉", "cancelled": "❌", "denied": "❌",
}


def status_label(status: str) -> str:
    return status.replace("_", " ").title()


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    template: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class Notice:
    user_id: int | None
    title: str
    message: str
    type: str = "info"
    email: OutgoingEmail | None = None


def send(outgoing: OutgoingEmail) -> None:
    """Queue one email. Raises DeliveryError on failure."""
    email_service.send_templated_email(outgoing.to, outgoing.subject, outgoing.template, outgoing.context)


def dispatch(db: Session, notices: Iterable[Notice]) -> int:
    """Persist in-app notifications and queue emails; returns how many notices went out cleanly."""
    notices = list(notices)
    delivered = 0
    in_app = [n for n in notices if n.user_id is not None]
    stored = True
    if in_app:
        try:
            db.add_all(
                Notification(user_id=n.user_id, title=n.title, message=n.message, type=n.type) for n in in_app
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to store %d in-app notifications", len(in_app))
            stored = False

    for notice in notices:
        ok = stored or notice.user_id is None
        if notice.email is not None:
            try:
                send(notice.email)
            except Exception:
                ok = False
                logger.exception("Failed to queue '%s' email to %s", notice.email.subject, notice.email.to)
        delivered += int(ok)
    return delivered


def admin_recipients(db: Session) -> list[str]:
    """Admin mailboxes from the users table, falling back to ADMIN_EMAILS."""
    emails = [e.lower() for e in db.scalars(select(User.email).where(User.role == Role.ADMIN))]
    for fallback in settings.ADMIN_EMAILS:
        if fallback not in emails:
            emails.append(fallback)
    return emails


def admin_user_ids(db: Session) -> list[int]:
    return list(db.scalars(select(User.id).where(User.role == Role.ADMIN)))


# Email builders

def order_status_email(email: str, order_id: int, order_number: str, status: str, note: str) -> OutgoingEmail:
    emoji = STATUS_EMOJI.get(status, "📦")
    return OutgoingEmail(
        to=email,
        subject=f"{emoji} Order #{order_number} - {status_label(status)}",
        template="emails/order_status.html",
        context={
            "order_id": order_id, "order_number": order_number, "status": status,
            "status_label": status_label(status), "note": note,
        },
    )


def seller_order_status_email(email: str, order_number: str, status: str, buyer_name: str) -> OutgoingEmail:
    return OutgoingEmail(
        to=email,
        subject=f"Order #{order_number} - {status_label(status)}",
        template="emails/seller_order_status.html",
        context={
            "order_number": order_number, "status": status,
            "status_label": status_label(status), "buyer_name": buyer_name,
        },
    )


def admin_order_status_email(email: str, order_number: str, status: str, note: str) -> OutgoingEmail:
    return OutgoingEmail(
        to=email,
        subject=f"Order #{order_number} - {status_label(status)}",
        template="emails/admin_order_status.html",
        context={"order_number": order_number, "status_label": status_label(status), "note": note},
    )


def admin_message_email(email: str, title: str, message: str, type: str = "info") -> OutgoingEmail:
    emoji = {"info": "📢", "success": "✅", "warning": "⚠️", "error": "❌"}.get(type, "📢")
    return OutgoingEmail(
        to=email,
        subject=f"{emoji} {title} - EcoHaat",
        template="emails/admin_message.html",
        context={"title": title, "message": message},
    )


# In-app notification centre

def list_for_user(db: Session, user: User, limit: int = 20) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def unread_count(db: Session, user: User) -> int:
    return db.scalar(
        select(func.count(Notification.id)).where(Notification.user_id == user.id, Notification.read.is_(False))
    )


def _owned(db: Session, user: User, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(db: Session, user: User, notification_id: int) -> Notification:
    notification = _owned(db, user, notification_id)
    notification.read = True
    db.commit()
    return notification


def mark_all_read(db: Session, user: User) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.read.is_(False))
        .values(read=True)
    )
    db.commit()
    return result.rowcount


def delete(db: Session, user: User, notification_id: int) -> None:
    db.delete(_owned(db, user, notification_id))
    db.commit()
