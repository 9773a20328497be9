from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class _CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# Mail endpoints: fields are optional so the routes can answer missing ones with 400

class OrderStatusMailRequest(_CamelModel):
    email: Optional[str] = None
    order_id: Optional[int] = Field(default=None, alias="orderId")
    order_number: Optional[str] = Field(default=None, alias="orderNumber")
    status: Optional[str] = None
    note: Optional[str] = None


class SellerOrderStatusMailRequest(_CamelModel):
    email: Optional[str] = None
    order_number: Optional[str] = Field(default=None, alias="orderNumber")
    status: Optional[str] = None
    buyer_name: Optional[str] = Field(default=None, alias="buyerName")


class AdminOrderStatusMailRequest(_CamelModel):
    order_number: Optional[str] = Field(default=None, alias="orderNumber")
    status: Optional[str] = None
    note: Optional[str] = None


class AdminMessageRequest(_CamelModel):
    email: Optional[str] = None
    user_id: Optional[int] = Field(default=None, alias="userId")
    title: Optional[str] = None
    message: Optional[str] = None
    type: str = "info"


class MailSent(BaseModel):
    success: bool = True
    sent: int = 1


class NotificationOut(BaseModel):
    id: int
    title: str
    message: str
    type: str
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    unread: int
    items: List[NotificationOut]
