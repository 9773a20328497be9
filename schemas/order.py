from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class CartLineIn(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
    options: Optional[dict] = None


class ShippingIn(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=6, max_length=30)
    division: str = Field(min_length=1, max_length=50)
    district: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1, max_length=500)
    email: Optional[EmailStr] = None


class OrderCreate(BaseModel):
    # Omit items to check out the caller's cart
    items: Optional[List[CartLineIn]] = None
    shipping: ShippingIn
    discount_code: Optional[str] = None


class TrackingEvent(BaseModel):
    status: str
    timestamp: str
    note: str
    # Set on events that moved a single line rather than the whole order
    item_id: Optional[int] = None
    product_name: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    product_id: int
    product_name: Optional[str] = None
    seller_id: int
    quantity: int
    price_at_purchase: int
    seller_earning: int
    item_status: Optional[str] = None
    denial_reason: Optional[str] = None
    options: Optional[dict] = None
    payment_received: bool
    payment_sent_to_seller: bool
    version: int

    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    id: int
    order_number: str
    status: str
    phone: str
    shipping_address: dict
    created_at: datetime

    class Config:
        from_attributes = True


class SellerItemOut(OrderItemOut):
    order: OrderSummary


class OrderOut(BaseModel):
    id: int
    order_number: str
    buyer_id: int
    subtotal: int
    discount_amount: int
    delivery_charge: int
    cod_charge: int
    total_amount: int
    phone: str
    payment_method: str
    shipping_address: dict
    status: str
    denial_reason: Optional[str] = None
    tracking_history: List[TrackingEvent]
    version: int
    created_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class DenyRequest(BaseModel):
    reason: str = ""


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None


class SellerEarningsOut(BaseModel):
    total_earned: int
    pending: int
    paid_out: int
    awaiting_payout: int
    items: int
    by_status: dict

    class Config:
        from_attributes = True
