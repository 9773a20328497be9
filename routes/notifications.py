from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user, require_roles
from models.user import User
from schemas.notification import (
    AdminMessageRequest,
    AdminOrderStatusMailRequest,
    MailSent,
    NotificationList,
    NotificationOut,
    OrderStatusMailRequest,
    SellerOrderStatusMailRequest,
)
from services import notifications
from services.notifications import Notice

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _require_fields(data, *names: str) -> None:
    missing = [name for name in names if not getattr(data, name)]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")


# Transactional mail

@router.post("/order-status", response_model=MailSent)
def order_status_mail(data: OrderStatusMailRequest, _: User = Depends(get_current_user)):
    _require_fields(data, "email", "order_number", "status")
    notifications.send(notifications.order_status_email(
        data.email, data.order_id, data.order_number, data.status, data.note or "",
    ))
    return MailSent()


@router.post("/seller/order-status", response_model=MailSent)
def seller_order_status_mail(data: SellerOrderStatusMailRequest, _: User = Depends(get_current_user)):
    _require_fields(data, "email", "order_number", "status")
    notifications.send(notifications.seller_order_status_email(
        data.email, data.order_number, data.status, data.buyer_name or "",
    ))
    return MailSent()


@router.post("/admin/order-status", response_model=MailSent)
def admin_order_status_mail(
    data: AdminOrderStatusMailRequest, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)
):
    _require_fields(data, "order_number", "status")
    recipients = notifications.admin_recipients(db)
    for address in recipients:
        notifications.send(notifications.admin_order_status_email(address, data.order_number, data.status, data.note or ""))
    return MailSent(sent=len(recipients))


@router.post("/admin/send", response_model=MailSent)
def admin_send(data: AdminMessageRequest, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    _require_fields(data, "email", "title", "message")
    notifications.send(notifications.admin_message_email(data.email, data.title, data.message, data.type))
    if data.user_id is not None:
        notifications.dispatch(db, [Notice(data.user_id, data.title, data.message, data.type)])
    return MailSent()


# In-app notification centre

@router.get("", response_model=NotificationList)
def my_notifications(limit: int = 20, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return NotificationList(
        unread=notifications.unread_count(db, user),
        items=[
            NotificationOut.model_validate(n)
            for n in notifications.list_for_user(db, user, limit=min(max(limit, 1), 100))
        ],
    )


@router.post("/read-all")
def read_all(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"updated": notifications.mark_all_read(db, user)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def read_one(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return notifications.mark_read(db, user, notification_id)


@router.delete("/{notification_id}", status_code=204)
def delete_one(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notifications.delete(db, user, notification_id)
