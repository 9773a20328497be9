from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user, require_roles
from models.user import User
from schemas.order import (
    CancelRequest,
    DenyRequest,
    OrderCreate,
    OrderItemOut,
    OrderOut,
    OrderStatusUpdate,
    SellerEarningsOut,
    SellerItemOut,
)
from services import cart as cart_service
from services import order_lifecycle as lifecycle
from services.order_lifecycle import CartLine, ShippingDetails

router = APIRouter(prefix="/api", tags=["orders"])

ExpectedVersion = Optional[int]


def parse_version_tag(value: Optional[str]) -> ExpectedVersion:
    """Accept ``3``, ``"3"`` and ``W/"3"`` as the expected row version; ``*`` means any."""
    if value is None:
        return None
    tag = value.strip()
    if tag in ("", "*"):
        return None
    if tag.startswith("W/"):
        tag = tag[2:]
    tag = tag.strip('"')
    if not tag.isdigit():
        raise HTTPException(status_code=400, detail="If-Match must carry an order or item version number")
    return int(tag)


def _if_match(if_match: Optional[str] = Header(default=None, alias="If-Match")) -> ExpectedVersion:
    return parse_version_tag(if_match)


# Buyer

@router.post("/orders", response_model=OrderOut, status_code=201)
def place_order(data: OrderCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if data.items is not None:
        lines = [CartLine(line.product_id, line.quantity, line.options) for line in data.items]
    else:
        lines = [CartLine(item.product_id, item.quantity) for item in cart_service.list_cart(db, user)]
    if not lines:
        raise HTTPException(status_code=400, detail="Cart is empty")
    shipping = ShippingDetails(**data.shipping.model_dump())
    return lifecycle.create_order(db, user, lines, shipping, discount_code=data.discount_code)


@router.get("/orders", response_model=List[OrderOut])
def my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return lifecycle.list_orders_for_buyer(db, user)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return lifecycle.get_order(db, user, order_id)


@router.post("/orders/{order_id}/deliver", response_model=OrderOut)
def confirm_delivery(
    order_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.mark_delivered(db, user, order_id, expected_version)


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    data: Optional[CancelRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    reason = data.reason if data else None
    return lifecycle.cancel_order(db, user, order_id, reason, expected_version)


# Seller

@router.get("/seller/items", response_model=List[SellerItemOut])
def seller_items(
    status: Optional[str] = None,
    user: User = Depends(require_roles("seller")),
    db: Session = Depends(get_db),
):
    return lifecycle.list_items_for_seller(db, user, status)


@router.get("/seller/earnings", response_model=SellerEarningsOut)
def seller_earnings(user: User = Depends(require_roles("seller")), db: Session = Depends(get_db)):
    return lifecycle.seller_earnings(db, user)


@router.post("/order-items/{item_id}/accept", response_model=OrderItemOut)
def accept_item(
    item_id: int,
    user: User = Depends(require_roles("seller")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.accept_item(db, user, item_id, expected_version)


@router.post("/order-items/{item_id}/deny", response_model=OrderItemOut)
def deny_item(
    item_id: int,
    data: DenyRequest,
    user: User = Depends(require_roles("seller")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.deny_item(db, user, item_id, data.reason, expected_version)


@router.post("/order-items/{item_id}/processing", response_model=OrderItemOut)
def mark_processing(
    item_id: int,
    user: User = Depends(require_roles("seller")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.mark_processing(db, user, item_id, expected_version)


@router.post("/order-items/{item_id}/shipped", response_model=OrderItemOut)
def mark_shipped(
    item_id: int,
    user: User = Depends(require_roles("seller")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.mark_shipped(db, user, item_id, expected_version)


@router.post("/order-items/{item_id}/at-station", response_model=OrderItemOut)
def mark_at_station(
    item_id: int,
    user: User = Depends(require_roles("seller", "admin")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.mark_at_station(db, user, item_id, expected_version)


@router.post("/order-items/{item_id}/reached-destination", response_model=OrderItemOut)
def mark_reached_destination(
    item_id: int,
    user: User = Depends(require_roles("seller", "admin")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.mark_reached_destination(db, user, item_id, expected_version)


# Admin

@router.get("/admin/orders", response_model=List[OrderOut])
def all_orders(status: Optional[str] = None, user: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return lifecycle.list_all_orders(db, user, status)


@router.post("/admin/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    user: User = Depends(require_roles("admin")),
    db: Session = Depends(get_db),
    expected_version: ExpectedVersion = Depends(_if_match),
):
    return lifecycle.advance_order(db, user, order_id, data.status, data.note, expected_version)


@router.post("/admin/order-items/{item_id}/payment-received", response_model=OrderItemOut)
def payment_received(item_id: int, user: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return lifecycle.mark_payment_received(db, user, item_id)


@router.post("/admin/order-items/{item_id}/payment-sent", response_model=OrderItemOut)
def payment_sent(item_id: int, user: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return lifecycle.mark_payment_sent_to_seller(db, user, item_id)
