from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationFailedError
from models.cart_item import CartItem
from models.product import Product
from models.user import User


def list_cart(db: Session, user: User) -> list[CartItem]:
    return list(db.scalars(select(CartItem).where(CartItem.user_id == user.id).order_by(CartItem.id)))


def cart_subtotal(items: list[CartItem]) -> int:
    return sum(item.product.price * item.quantity for item in items)


def _check_stock(product: Product, quantity: int) -> None:
    if product.stock < 1:
        raise ValidationFailedError(f"{product.name} is out of stock")
    if quantity > product.stock:
        raise ValidationFailedError(f"Only {product.stock} of {product.name} left in stock")


def add_to_cart(db: Session, user: User, product_id: int, quantity: int = 1) -> CartItem:
    if quantity < 1:
        raise ValidationFailedError("Quantity must be at least 1")
    product = db.get(Product, product_id)
    if not product or not product.is_purchasable:
        raise NotFoundError("Product not found")
    if product.seller_id == user.id:
        raise ValidationFailedError("You cannot buy your own product")

    item = db.scalar(select(CartItem).where(CartItem.user_id == user.id, CartItem.product_id == product_id))
    _check_stock(product, quantity + (item.quantity if item else 0))
    if item:
        item.quantity += quantity
    else:
        item = CartItem(user_id=user.id, product_id=product_id, quantity=quantity)
        db.add(item)
    db.commit()
    db.refresh(item)
    return item


def _owned(db: Session, user: User, item_id: int) -> CartItem:
    item = db.get(CartItem, item_id)
    if not item or item.user_id != user.id:
        raise NotFoundError("Cart item not found")
    return item


def update_quantity(db: Session, user: User, item_id: int, quantity: int) -> CartItem | None:
    """Set the quantity of a line; zero removes it."""
    item = _owned(db, user, item_id)
    if quantity < 0:
        raise ValidationFailedError("Quantity must not be negative")
    if quantity == 0:
        db.delete(item)
        db.commit()
        return None
    _check_stock(item.product, quantity)
    item.quantity = quantity
    db.commit()
    return item


def remove_item(db: Session, user: User, item_id: int) -> None:
    db.delete(_owned(db, user, item_id))
    db.commit()
