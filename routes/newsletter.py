from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import require_roles
from models.user import User
from schemas.newsletter import BroadcastRequest, BroadcastResult, SubscribeRequest, SubscriberCount
from services import newsletter as newsletter_service

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])


@router.post("/subscribe", status_code=201)
def subscribe(data: SubscribeRequest, db: Session = Depends(get_db)):
    newsletter_service.subscribe(db, data.email)
    return {"detail": "Subscribed"}


@router.post("/unsubscribe")
def unsubscribe(data: SubscribeRequest, db: Session = Depends(get_db)):
    newsletter_service.unsubscribe(db, data.email)
    return {"detail": "Unsubscribed"}


@router.get("/subscribers/count", response_model=SubscriberCount)
def subscriber_count(_: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return SubscriberCount(count=newsletter_service.subscriber_count(db))


@router.post("/broadcast", response_model=BroadcastResult)
def broadcast(data: BroadcastRequest, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return newsletter_service.broadcast(db, data.subject, data.content, data.preview_text)
