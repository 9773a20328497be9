"""Order lifecycle: checkout, per-item fulfilment, delivery, cancellation and payouts.

Every line item moves through its own status independently because one order
can hold lines from several sellers. The parent order's status is rolled up
from its items, except for the order-level actions (delivery, cancellation,
admin bulk updates) which cascade down to the items instead.

Legality is decided by the transition tables below and nothing else. Each
status change appends exactly one ``{status, timestamp, note}`` event to the
order's ``tracking_history``; a rejected request changes nothing and sends
nothing. ``orders.version``/``order_items.version`` make every
read-modify-write a compare-and-swap, so a lost race surfaces as
:class:`ConcurrentUpdateError` instead of a silently dropped event.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.clock import isoformat_utc, utcnow
from core.exceptions import (
    ConcurrentUpdateError,
    DiscountRejectedError,
    IllegalTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from models.cart_item import CartItem
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from models.user import User, Role
from services import discount as discount_service
from services import notifications
from services.identifiers import next_order_number
from services.notifications import Notice, OutgoingEmail
from services.pricing import price_order

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    AT_STATION = "at_station"
    REACHED_DESTINATION = "reached_destination"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DENIED = "denied"


S = OrderStatus

FORWARD_SEQUENCE = (
    S.PENDING, S.CONFIRMED, S.PROCESSING, S.SHIPPED, S.AT_STATION, S.REACHED_DESTINATION, S.DELIVERED,
)
RANK = {status: rank for rank, status in enumerate(FORWARD_SEQUENCE)}
TERMINAL = frozenset({S.DELIVERED, S.CANCELLED, S.DENIED})
NON_TERMINAL = frozenset(FORWARD_SEQUENCE) - TERMINAL

ITEM_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.DENIED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PROCESSING, S.SHIPPED, S.CANCELLED}),
    S.PROCESSING: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.AT_STATION, S.REACHED_DESTINATION, S.CANCELLED}),
    S.AT_STATION: frozenset({S.REACHED_DESTINATION, S.CANCELLED}),
    S.REACHED_DESTINATION: frozenset({S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.DENIED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.DENIED}),
    S.CONFIRMED: frozenset({S.PROCESSING, S.SHIPPED, S.CANCELLED, S.DENIED}),
    S.PROCESSING: frozenset({S.SHIPPED, S.CANCELLED, S.DENIED}),
    S.SHIPPED: frozenset({S.AT_STATION, S.REACHED_DESTINATION, S.CANCELLED}),
    S.AT_STATION: frozenset({S.REACHED_DESTINATION, S.CANCELLED}),
    S.REACHED_DESTINATION: frozenset({S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.DENIED: frozenset(),
}

# Buyers may only cancel before anyone acted, and confirm receipt once the parcel is in their area
BUYER_ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.CANCELLED}),
    S.REACHED_DESTINATION: frozenset({S.DELIVERED}),
}

# Admins may force delivery or cancellation from any non-terminal state
ADMIN_OVERRIDE_TARGETS = frozenset({S.DELIVERED, S.CANCELLED})


@dataclass
class CartLine:
    product_id: int
    quantity: int
    options: dict | None = None


@dataclass
class ShippingDetails:
    full_name: str
    phone: str
    division: str
    district: str
    address: str
    email: str | None = None

    def as_json(self, fallback_email: str) -> dict:
        return {
            "full_name": self.full_name,
            "division": self.division,
            "district": self.district,
            "address": self.address,
            "email": self.email or fallback_email,
        }


@dataclass
class SellerEarnings:
    total_earned: int = 0
    pending: int = 0
    paid_out: int = 0
    awaiting_payout: int = 0
    items: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


def coerce_status(value: str | None) -> OrderStatus:
    """Unset item statuses count as pending."""
    try:
        return OrderStatus(value or S.PENDING.value)
    except ValueError:
        raise ValidationFailedError(f"Unknown status '{value}'")


def item_status(item: OrderItem) -> OrderStatus:
    return coerce_status(item.item_status)


def order_status(order: Order) -> OrderStatus:
    return coerce_status(order.status)


def effective_item_status(item: OrderItem) -> OrderStatus:
    """The item's own status, unless a still-open line sits in an order closed as delivered.

    Denied and cancelled lines keep their status, so they never count as delivered or payable.
    """
    own = item_status(item)
    if own in NON_TERMINAL and order_status(item.order) == S.DELIVERED:
        return S.DELIVERED
    return own


def allowed_item_targets(current: OrderStatus) -> frozenset[OrderStatus]:
    return ITEM_TRANSITIONS.get(current, frozenset())


def allowed_order_targets(current: OrderStatus, actor: User, order: Order) -> frozenset[OrderStatus]:
    if actor.role == Role.ADMIN:
        allowed = ORDER_TRANSITIONS.get(current, frozenset())
        if current in NON_TERMINAL:
            allowed = allowed | ADMIN_OVERRIDE_TARGETS
        return allowed
    if order.buyer_id == actor.id:
        return BUYER_ORDER_TRANSITIONS.get(current, frozenset())
    return frozenset()


def _check(current: OrderStatus, target: OrderStatus, allowed: frozenset[OrderStatus], detail: str | None = None):
    if target not in allowed:
        raise IllegalTransitionError(current.value, target.value, detail)


def _check_version(obj, expected_version: int | None) -> None:
    if expected_version is not None and obj.version != expected_version:
        raise ConcurrentUpdateError(
            f"{type(obj).__name__} {obj.id} is at version {obj.version}, not {expected_version}; reload and retry"
        )


def _append_event(order: Order, status: OrderStatus, note: str, item: OrderItem | None = None) -> None:
    """Order-level events carry the order's new status; item events also name the line they moved."""
    event = {"status": status.value, "timestamp": isoformat_utc(utcnow()), "note": note}
    if item is not None:
        event["item_id"] = item.id
        event["product_name"] = _product_name(item)
    # New list so the JSON column is seen as changed
    order.tracking_history = [*(order.tracking_history or []), event]


def _rollup(order: Order) -> None:
    statuses = [item_status(item) for item in order.items]
    if not statuses:
        return
    active = [status for status in statuses if status not in (S.DENIED, S.CANCELLED)]
    if active:
        rolled = min(active, key=RANK.__getitem__)
    elif S.CANCELLED in statuses:
        rolled = S.CANCELLED
    else:
        rolled = S.DENIED
        if not order.denial_reason:
            order.denial_reason = next((i.denial_reason for i in order.items if i.denial_reason), None)
    order.status = rolled.value


def _commit(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError("The order was changed by someone else; reload and retry") from exc


def _load_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _load_item(db: Session, item_id: int) -> OrderItem:
    item = db.get(OrderItem, item_id)
    if not item:
        raise NotFoundError("Order item not found")
    return item


def _require_admin(actor: User) -> None:
    if actor.role != Role.ADMIN:
        raise PermissionDeniedError("Admin role required")


def _require_item_actor(actor: User, item: OrderItem, allow_admin: bool = False) -> None:
    if allow_admin and actor.role == Role.ADMIN:
        return
    if actor.role == Role.SELLER and item.seller_id == actor.id:
        return
    raise PermissionDeniedError("Only the seller of this item can update it")


def _product_name(item: OrderItem) -> str:
    return item.product_name or f"Item #{item.id}"


def _buyer_email(order: Order) -> str | None:
    return (order.shipping_address or {}).get("email") or (order.buyer.email if order.buyer else None)


def _buyer_notice(order: Order, title: str, status: OrderStatus, note: str, type: str = "info",
                  with_email: bool = True) -> Notice:
    email = _buyer_email(order)
    outgoing = None
    if with_email and email:
        outgoing = notifications.order_status_email(email, order.id, order.order_number, status.value, note)
    return Notice(order.buyer_id, title, f"Order #{order.order_number}: {note}", type, outgoing)


def _seller_notices(order: Order, status: OrderStatus, items: Iterable[OrderItem]) -> list[Notice]:
    buyer_name = order.shipping_address.get("full_name") or (order.buyer.display_name if order.buyer else "")
    notices, seen = [], set()
    for item in items:
        if item.seller_id in seen or item.seller is None:
            continue
        seen.add(item.seller_id)
        notices.append(Notice(
            item.seller_id,
            "Order Update",
            f"Order #{order.order_number} is now {notifications.status_label(status.value)}.",
            "info",
            notifications.seller_order_status_email(item.seller.email, order.order_number, status.value, buyer_name),
        ))
    return notices


def _admin_notices(db: Session, order: Order, status: OrderStatus, note: str) -> list[Notice]:
    label = notifications.status_label(status.value)
    notices = [
        Notice(admin_id, "Order Update", f"Order #{order.order_number} is now {label}. {note}")
        for admin_id in notifications.admin_user_ids(db)
    ]
    notices.extend(
        Notice(None, "", "", email=notifications.admin_order_status_email(address, order.order_number, status.value, note))
        for address in notifications.admin_recipients(db)
    )
    return notices


# Checkout

def _merge_lines(lines: Iterable[CartLine]) -> list[CartLine]:
    merged: dict[int, CartLine] = {}
    for line in lines:
        if line.quantity < 1:
            raise ValidationFailedError(f"Quantity for product {line.product_id} must be at least 1")
        if line.product_id in merged:
            merged[line.product_id].quantity += line.quantity
        else:
            merged[line.product_id] = CartLine(line.product_id, line.quantity, line.options)
    return list(merged.values())


def create_order(
    db: Session,
    buyer: User,
    lines: Iterable[CartLine],
    shipping: ShippingDetails,
    discount_code: str | None = None,
) -> Order:
    """Place a cash-on-delivery order for ``lines`` and empty the buyer's cart."""
    lines = _merge_lines(lines)
    if not lines:
        raise ValidationFailedError("Cart is empty")
    for name in ("full_name", "phone", "division", "district", "address"):
        if not (getattr(shipping, name) or "").strip():
            raise ValidationFailedError(f"Shipping {name.replace('_', ' ')} is required")

    product_ids = [line.product_id for line in lines]
    products = {p.id: p for p in db.scalars(select(Product).where(Product.id.in_(product_ids)))}
    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise NotFoundError(f"Products not found: {', '.join(map(str, missing))}")
    unavailable = [products[pid].name for pid in product_ids if not products[pid].is_purchasable]
    if unavailable:
        raise ValidationFailedError(f"No longer available: {', '.join(unavailable)}")
    short = [products[line.product_id].name for line in lines if line.quantity > products[line.product_id].stock]
    if short:
        raise ValidationFailedError(f"Not enough stock: {', '.join(short)}")

    subtotal = sum(products[line.product_id].price * line.quantity for line in lines)

    discount = None
    if discount_code:
        discount = discount_service.validate_code(db, discount_code, subtotal, buyer.id)
        if not discount.valid:
            raise DiscountRejectedError(discount.message, code=discount.error)
    pricing = price_order(
        subtotal,
        shipping.division,
        discount_amount=discount.discount_amount if discount else 0,
        free_shipping=discount.free_shipping if discount else False,
    )

    # Order numbers are a per-day count; a concurrent checkout can take ours, so recount and retry
    for attempt in range(3):
        created_at = utcnow()
        order = Order(
            order_number=next_order_number(db, created_at),
            buyer_id=buyer.id,
            subtotal=pricing.subtotal,
            discount_amount=pricing.discount_amount,
            delivery_charge=pricing.delivery_charge,
            cod_charge=pricing.cod_charge,
            total_amount=pricing.total,
            discount_code_id=discount.code_id if discount else None,
            phone=shipping.phone.strip(),
            payment_method="cod",
            shipping_address=shipping.as_json(buyer.email),
            status=S.PENDING.value,
            tracking_history=[],
            created_at=created_at,
        )
        _append_event(order, S.PENDING, "Order placed. Waiting for seller confirmation.")
        db.add(order)
        try:
            db.flush()
            break
        except IntegrityError:
            db.rollback()
            logger.warning("Order number %s taken, retrying (attempt %d)", order.order_number, attempt + 1)
    else:
        raise ConcurrentUpdateError("Could not allocate an order number, please retry")

    items = []
    for line in lines:
        product = products[line.product_id]
        items.append(OrderItem(
            order_id=order.id,
            product_id=product.id,
            seller_id=product.seller_id,
            quantity=line.quantity,
            price_at_purchase=product.price,
            seller_earning=product.price * line.quantity,
            item_status=S.PENDING.value,
            options=line.options,
        ))
    db.add_all(items)
    _reserve_stock(db, lines)

    if discount:
        try:
            discount_service.record_use(db, discount.code_id, buyer.id, order.id)
        except DiscountRejectedError:
            db.rollback()
            raise

    db.execute(delete(CartItem).where(CartItem.user_id == buyer.id))
    _commit(db)
    db.refresh(order)
    logger.info("Order %s placed by user %s: %d items, total %d", order.order_number, buyer.id, len(items), order.total_amount)

    notifications.dispatch(db, _order_placed_notices(db, order, buyer))
    return order


def _reserve_stock(db: Session, lines: list[CartLine]) -> None:
    """Take each line's quantity off the shelf, failing the checkout if a concurrent one got there first."""
    for line in lines:
        result = db.execute(
            update(Product)
            .where(Product.id == line.product_id, Product.stock >= line.quantity)
            .values(stock=Product.stock - line.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ValidationFailedError("Not enough stock left to place this order")
        product = db.get(Product, line.product_id)
        db.expire(product, ["stock"])


def _order_placed_notices(db: Session, order: Order, buyer: User) -> list[Notice]:
    notices = []
    buyer_email = _buyer_email(order)
    buyer_name = order.shipping_address.get("full_name") or buyer.display_name
    notices.append(Notice(
        buyer.id, "Order Placed",
        f"Your order #{order.order_number} has been placed. Total ৳{order.total_amount}.",
        "success",
        OutgoingEmail(
            to=buyer_email,
            subject=f"Order Confirmed #{order.order_number} - Eco-Haat",
            template="emails/order_placed.html",
            context={
                "order_id": order.id, "order_number": order.order_number,
                "total": order.total_amount, "buyer_name": buyer_name,
            },
        ) if buyer_email else None,
    ))
    for item in order.items:
        notices.append(Notice(
            item.seller_id, "New Order",
            f"New order #{order.order_number}: {_product_name(item)} ×{item.quantity}. Please accept or deny it.",
            "info",
            OutgoingEmail(
                to=item.seller.email,
                subject=f"🛒 New Order #{order.order_number} - Action Required",
                template="emails/seller_new_order.html",
                context={
                    "order_number": order.order_number, "product_name": _product_name(item),
                    "quantity": item.quantity, "earning": item.seller_earning,
                },
            ),
        ))
    for address in notifications.admin_recipients(db):
        notices.append(Notice(None, "", "", email=OutgoingEmail(
            to=address,
            subject=f"New Order #{order.order_number}",
            template="emails/admin_new_order.html",
            context={"order_number": order.order_number, "total": order.total_amount, "buyer_name": buyer_name},
        )))
    return notices


# Item-level transitions

def _transition_item(db: Session, item: OrderItem, target: OrderStatus, note: str) -> Order:
    current = item_status(item)
    _check(current, target, allowed_item_targets(current))
    item.item_status = target.value
    order = item.order
    _append_event(order, target, note, item)
    _rollup(order)
    _commit(db)
    logger.info(
        "Item %s of order %s: %s -> %s (order now %s)",
        item.id, order.order_number, current.value, target.value, order.status,
    )
    return order


def accept_item(db: Session, actor: User, item_id: int, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item)
    _check_version(item, expected_version)
    note = f"{_product_name(item)} confirmed by the seller."
    order = _transition_item(db, item, S.CONFIRMED, note)
    notifications.dispatch(db, [_buyer_notice(order, "Order Confirmed", S.CONFIRMED, note, "success")])
    return item


def deny_item(db: Session, actor: User, item_id: int, reason: str, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailedError("A reason is required to deny an order")
    _check_version(item, expected_version)
    _check(item_status(item), S.DENIED, allowed_item_targets(item_status(item)))
    item.denial_reason = reason
    note = f"{_product_name(item)} was denied by the seller. Reason: {reason}"
    order = _transition_item(db, item, S.DENIED, note)
    notifications.dispatch(db, [_buyer_notice(order, "Order Denied", S.DENIED, note, "error")])
    return item


def mark_processing(db: Session, actor: User, item_id: int, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item)
    _check_version(item, expected_version)
    _transition_item(db, item, S.PROCESSING, f"{_product_name(item)} is being prepared.")
    return item


def mark_shipped(db: Session, actor: User, item_id: int, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item)
    _check_version(item, expected_version)
    note = f"{_product_name(item)} has been shipped."
    order = _transition_item(db, item, S.SHIPPED, note)
    notices = [_buyer_notice(order, "Order Shipped", S.SHIPPED, note)]
    notices += _seller_notices(order, S.SHIPPED, [item])
    notices += _admin_notices(db, order, S.SHIPPED, note)
    notifications.dispatch(db, notices)
    return item


def mark_at_station(db: Session, actor: User, item_id: int, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item, allow_admin=True)
    _check_version(item, expected_version)
    _transition_item(db, item, S.AT_STATION, f"{_product_name(item)} has arrived at the delivery station.")
    return item


def mark_reached_destination(db: Session, actor: User, item_id: int, expected_version: int | None = None) -> OrderItem:
    item = _load_item(db, item_id)
    _require_item_actor(actor, item, allow_admin=True)
    _check_version(item, expected_version)
    note = f"{_product_name(item)} has reached your area and is ready for delivery."
    order = _transition_item(db, item, S.REACHED_DESTINATION, note)
    notifications.dispatch(db, [_buyer_notice(order, "Ready for Delivery", S.REACHED_DESTINATION, note, "success")])
    return item


# Order-level transitions

def _cascade(order: Order, target: OrderStatus, reason: str | None = None) -> list[OrderItem]:
    """Move every non-terminal item that is behind ``target`` to it."""
    moved = []
    for item in order.items:
        current = item_status(item)
        if current in TERMINAL:
            continue
        if target in (S.CANCELLED, S.DENIED) or RANK[current] < RANK[target]:
            item.item_status = target.value
            if target == S.DENIED:
                item.denial_reason = reason
            moved.append(item)
    return moved


def mark_delivered(db: Session, actor: User, order_id: int, expected_version: int | None = None) -> Order:
    """Close an order as delivered. Repeating the call on a delivered order changes nothing."""
    order = _load_order(db, order_id)
    if actor.role != Role.ADMIN and order.buyer_id != actor.id:
        raise PermissionDeniedError("Only the buyer or an admin can confirm delivery")
    current = order_status(order)
    if current == S.DELIVERED:
        logger.info("Order %s already delivered, nothing to do", order.order_number)
        return order
    _check_version(order, expected_version)
    _check(
        current, S.DELIVERED, allowed_order_targets(current, actor, order),
        None if actor.role == Role.ADMIN else "Delivery can be confirmed once the order reaches your area",
    )
    items = _cascade(order, S.DELIVERED)
    order.status = S.DELIVERED.value
    note = "Marked as delivered by admin." if actor.role == Role.ADMIN else "Delivery confirmed by the buyer."
    _append_event(order, S.DELIVERED, note)
    _commit(db)
    logger.info("Order %s delivered (%s -> delivered) by user %s", order.order_number, current.value, actor.id)

    notices = [_buyer_notice(order, "Order Delivered", S.DELIVERED, note, "success",
                             with_email=actor.role == Role.ADMIN)]
    notices += _seller_notices(order, S.DELIVERED, items)
    notifications.dispatch(db, notices)
    return order


def cancel_order(db: Session, actor: User, order_id: int, reason: str | None = None,
                 expected_version: int | None = None) -> Order:
    order = _load_order(db, order_id)
    if actor.role != Role.ADMIN and order.buyer_id != actor.id:
        raise PermissionDeniedError("Only the buyer or an admin can cancel this order")
    _check_version(order, expected_version)
    current = order_status(order)
    _check(
        current, S.CANCELLED, allowed_order_targets(current, actor, order),
        None if actor.role == Role.ADMIN else "Orders can only be cancelled while pending",
    )
    items = _cascade(order, S.CANCELLED)
    order.status = S.CANCELLED.value
    who = "admin" if actor.role == Role.ADMIN else "the buyer"
    note = f"Order cancelled by {who}." + (f" Reason: {reason.strip()}" if reason and reason.strip() else "")
    _append_event(order, S.CANCELLED, note)
    _commit(db)
    logger.info("Order %s cancelled (%s -> cancelled) by user %s", order.order_number, current.value, actor.id)

    notices = _seller_notices(order, S.CANCELLED, items)
    if actor.role == Role.ADMIN:
        notices.append(_buyer_notice(order, "Order Cancelled", S.CANCELLED, note, "error"))
    notifications.dispatch(db, notices)
    return order


def advance_order(db: Session, actor: User, order_id: int, target: str, note: str | None = None,
                  expected_version: int | None = None) -> Order:
    """Admin bulk update of a whole order; cascades to items that are behind."""
    _require_admin(actor)
    target_status = coerce_status(target)
    if target_status == S.DELIVERED:
        return mark_delivered(db, actor, order_id, expected_version)
    if target_status == S.CANCELLED:
        return cancel_order(db, actor, order_id, note, expected_version)

    order = _load_order(db, order_id)
    _check_version(order, expected_version)
    current = order_status(order)
    _check(current, target_status, allowed_order_targets(current, actor, order))
    note = (note or "").strip()
    if target_status == S.DENIED:
        if not note:
            raise ValidationFailedError("A reason is required to deny an order")
        order.denial_reason = note
    _cascade(order, target_status, reason=note or None)
    order.status = target_status.value
    label = notifications.status_label(target_status.value)
    event_note = note or f"Order is now {label}."
    _append_event(order, target_status, event_note)
    _commit(db)
    logger.info("Order %s moved %s -> %s by admin %s", order.order_number, current.value, target_status.value, actor.id)

    notifications.dispatch(db, [_buyer_notice(
        order, "Order Update", target_status, event_note, "error" if target_status == S.DENIED else "info",
    )])
    return order


# Payments (cash on delivery, settled by admins)

def mark_payment_received(db: Session, actor: User, item_id: int) -> OrderItem:
    _require_admin(actor)
    item = _load_item(db, item_id)
    status = effective_item_status(item)
    if status != S.DELIVERED:
        raise IllegalTransitionError(status.value, "payment_received", "Payment can only be recorded for delivered items")
    if item.payment_received:
        raise IllegalTransitionError(status.value, "payment_received", "Payment already recorded for this item")
    item.payment_received = True
    _commit(db)
    logger.info("Payment received for item %s (order %s)", item.id, item.order.order_number)
    return item


def mark_payment_sent_to_seller(db: Session, actor: User, item_id: int) -> OrderItem:
    _require_admin(actor)
    item = _load_item(db, item_id)
    status = effective_item_status(item)
    if not item.payment_received:
        raise IllegalTransitionError(status.value, "payment_sent", "Payment must be received before paying the seller")
    if item.payment_sent_to_seller:
        raise IllegalTransitionError(status.value, "payment_sent", "Seller has already been paid for this item")
    item.payment_sent_to_seller = True
    _commit(db)
    logger.info("Paid seller %s ৳%s for item %s", item.seller_id, item.seller_earning, item.id)

    order = item.order
    notifications.dispatch(db, [Notice(
        item.seller_id,
        "Payment Sent",
        f"৳{item.seller_earning} for {_product_name(item)} on order #{order.order_number} has been sent to you.",
        "success",
        OutgoingEmail(
            to=item.seller.email,
            subject=f"Payment sent for order #{order.order_number}",
            template="emails/seller_payout.html",
            context={
                "seller_name": item.seller.display_name, "amount": item.seller_earning,
                "product_name": _product_name(item), "quantity": item.quantity,
                "order_number": order.order_number,
            },
        ),
    )])
    return item


# Reads

def get_order(db: Session, actor: User, order_id: int) -> Order:
    order = _load_order(db, order_id)
    if actor.role == Role.ADMIN or order.buyer_id == actor.id:
        return order
    if any(item.seller_id == actor.id for item in order.items):
        return order
    raise PermissionDeniedError("You do not have access to this order")


def list_orders_for_buyer(db: Session, buyer: User) -> list[Order]:
    stmt = select(Order).where(Order.buyer_id == buyer.id).order_by(Order.created_at.desc(), Order.id.desc())
    return list(db.scalars(stmt))


def list_all_orders(db: Session, actor: User, status: str | None = None) -> list[Order]:
    _require_admin(actor)
    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if status:
        stmt = stmt.where(Order.status == coerce_status(status).value)
    return list(db.scalars(stmt))


def list_items_for_seller(db: Session, seller: User, status: str | None = None) -> list[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.seller_id == seller.id).order_by(OrderItem.id.desc())
    items = list(db.scalars(stmt))
    if status:
        wanted = coerce_status(status)
        items = [item for item in items if item_status(item) == wanted]
    return items


def seller_earnings(db: Session, seller: User) -> SellerEarnings:
    summary = SellerEarnings()
    for item in list_items_for_seller(db, seller):
        status = effective_item_status(item)
        summary.items += 1
        summary.by_status[status.value] = summary.by_status.get(status.value, 0) + 1
        if status == S.DELIVERED:
            summary.total_earned += item.seller_earning
            if item.payment_sent_to_seller:
                summary.paid_out += item.seller_earning
            else:
                summary.awaiting_payout += item.seller_earning
        elif status in NON_TERMINAL and status != S.PENDING:
            summary.pending += item.seller_earning
    return summary
