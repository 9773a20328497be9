"""Seller product listings and the admin review queue."""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from models.product import Product, ProductStatus
from models.user import Role, User, VerificationStatus
from services import notifications
from services.notifications import Notice

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "price", "original_price", "stock", "tags")


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_public_product(db: Session, product_id: int) -> Product:
    product = get_product(db, product_id)
    if not product.is_purchasable:
        raise NotFoundError("Product not found")
    return product


def list_public(db: Session) -> list[Product]:
    stmt = (
        select(Product)
        .where(Product.status == ProductStatus.APPROVED, Product.is_active.is_(True))
        .order_by(Product.created_at.desc(), Product.id.desc())
    )
    return list(db.scalars(stmt))


def list_for_seller(db: Session, seller: User) -> list[Product]:
    stmt = select(Product).where(Product.seller_id == seller.id).order_by(Product.id.desc())
    return list(db.scalars(stmt))


def list_pending(db: Session) -> list[Product]:
    stmt = select(Product).where(Product.status == ProductStatus.PENDING, Product.is_active.is_(True)).order_by(Product.id)
    return list(db.scalars(stmt))


def _check_prices(price: int | None, original_price: int | None, stock: int | None) -> None:
    if price is not None and price < 1:
        raise ValidationFailedError("Price must be at least 1")
    if original_price is not None and price is not None and original_price < price:
        raise ValidationFailedError("Original price cannot be below the selling price")
    if stock is not None and stock < 0:
        raise ValidationFailedError("Stock must not be negative")


def create_product(
    db: Session,
    seller: User,
    name: str,
    price: int,
    stock: int = 0,
    description: str | None = None,
    original_price: int | None = None,
    tags: list[str] | None = None,
) -> Product:
    """List a new product; it stays out of the catalogue until an admin approves it."""
    if seller.role != Role.SELLER or seller.verification_status != VerificationStatus.VERIFIED:
        raise PermissionDeniedError("Only verified sellers can list products")
    if not (name or "").strip():
        raise ValidationFailedError("Product name is required")
    _check_prices(price, original_price, stock)

    product = Product(
        seller_id=seller.id,
        name=name.strip(),
        description=description,
        price=price,
        original_price=original_price,
        stock=stock,
        tags=tags,
        status=ProductStatus.PENDING,
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Product %s listed by seller %s, awaiting review", product.id, seller.id)
    return product


def _editable(db: Session, user: User, product_id: int) -> Product:
    product = get_product(db, product_id)
    if not user.is_admin and product.seller_id != user.id:
        raise PermissionDeniedError("You can only change your own products")
    return product


def update_product(db: Session, user: User, product_id: int, **changes) -> Product:
    """Apply the non-None ``changes``. A seller's edit sends a rejected product back for review."""
    product = _editable(db, user, product_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    if "name" in changes:
        if not changes["name"].strip():
            raise ValidationFailedError("Product name is required")
        changes["name"] = changes["name"].strip()
    _check_prices(
        changes.get("price", product.price),
        changes.get("original_price", product.original_price),
        changes.get("stock"),
    )
    for key, value in changes.items():
        setattr(product, key, value)
    if product.status == ProductStatus.REJECTED and not user.is_admin:
        product.status = ProductStatus.PENDING
        product.rejection_reason = None
    db.commit()
    db.refresh(product)
    return product


def deactivate_product(db: Session, user: User, product_id: int) -> None:
    # Past orders keep pointing at the row, so it is hidden rather than deleted
    product = _editable(db, user, product_id)
    product.is_active = False
    db.commit()
    logger.info("Product %s deactivated by user %s", product.id, user.id)


# Admin review

def approve_product(db: Session, product_id: int) -> Product:
    product = get_product(db, product_id)
    if product.status == ProductStatus.APPROVED:
        raise ValidationFailedError("Product is already approved")
    product.status = ProductStatus.APPROVED
    product.rejection_reason = None
    db.commit()
    logger.info("Product %s approved", product.id)
    notifications.dispatch(db, [Notice(
        product.seller_id, "Product Approved",
        f'Your product "{product.name}" has been approved and is now live.', "success",
    )])
    return product


def reject_product(db: Session, product_id: int, reason: str) -> Product:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailedError("A rejection reason is required")
    product = get_product(db, product_id)
    if product.status == ProductStatus.REJECTED:
        raise ValidationFailedError("Product is already rejected")
    product.status = ProductStatus.REJECTED
    product.rejection_reason = reason
    db.commit()
    logger.info("Product %s rejected", product.id)
    notifications.dispatch(db, [Notice(
        product.seller_id, "Product Rejected",
        f'Your product "{product.name}" was rejected. Reason: {reason}', "error",
    )])
    return product
