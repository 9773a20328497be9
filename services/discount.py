"""Discount codes: validation at checkout, usage recording and admin management."""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.clock import utcnow
from core.exceptions import DiscountRejectedError, NotFoundError, ValidationFailedError
from models.discount import DiscountCode, DiscountCodeUse, DiscountType

logger = logging.getLogger(__name__)


class DiscountError:
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_ACTIVE = "NOT_YET_ACTIVE"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    PER_USER_LIMIT_REACHED = "PER_USER_LIMIT_REACHED"


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    message: str | None = None
    code_id: int | None = None
    code: str | None = None
    type: str | None = None
    discount_amount: int = 0
    label: str | None = None
    free_shipping: bool = False

    def as_response(self) -> dict:
        if not self.valid:
            return {"valid": False, "error": self.error, "message": self.message}
        discount = asdict(self)
        for key in ("valid", "error", "message"):
            discount.pop(key)
        return {"valid": True, "discount": discount}


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _reject(error: str, message: str) -> ValidationResult:
    return ValidationResult(valid=False, error=error, message=message)


def round_half_up(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def discount_label(discount: DiscountCode) -> str:
    if discount.type == DiscountType.PERCENTAGE:
        return f"{discount.value}% off"
    if discount.type == DiscountType.FIXED:
        return f"৳{discount.value} off"
    return "Free shipping"


def compute_amount(discount: DiscountCode, cart_total: int) -> int:
    if discount.type == DiscountType.PERCENTAGE:
        amount = Decimal(cart_total) * Decimal(discount.value) / Decimal(100)
        if discount.max_discount is not None:
            amount = min(amount, Decimal(discount.max_discount))
        return round_half_up(amount)
    if discount.type == DiscountType.FIXED:
        return min(discount.value, cart_total)
    return 0


def uses_by_user(db: Session, code_id: int, user_id: int) -> int:
    return db.scalar(
        select(func.count(DiscountCodeUse.id)).where(
            DiscountCodeUse.code_id == code_id, DiscountCodeUse.user_id == user_id
        )
    ) or 0


def get_by_code(db: Session, code: str) -> DiscountCode | None:
    return db.scalar(select(DiscountCode).where(DiscountCode.code == normalize_code(code)))


def validate_code(
    db: Session,
    code: str,
    cart_total: int,
    user_id: int | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    """Check ``code`` against ``cart_total``; stops at the first failing rule."""
    now = now or utcnow()
    discount = get_by_code(db, code) if normalize_code(code) else None
    if discount is None:
        return _reject(DiscountError.NOT_FOUND, "Invalid discount code")
    if not discount.is_active:
        return _reject(DiscountError.INACTIVE, "This discount code is no longer active")
    if discount.valid_from and now < discount.valid_from:
        return _reject(DiscountError.NOT_YET_ACTIVE, "This discount code is not active yet")
    if discount.valid_until and now > discount.valid_until:
        return _reject(DiscountError.EXPIRED, "This discount code has expired")
    if discount.max_uses is not None and discount.uses_count >= discount.max_uses:
        return _reject(DiscountError.USAGE_LIMIT_REACHED, "This discount code has reached its usage limit")
    if cart_total < discount.min_order_amount:
        return _reject(
            DiscountError.BELOW_MINIMUM,
            f"Minimum order amount for this code is ৳{discount.min_order_amount}",
        )
    if user_id is not None and discount.per_user_limit is not None:
        if uses_by_user(db, discount.id, user_id) >= discount.per_user_limit:
            return _reject(DiscountError.PER_USER_LIMIT_REACHED, "You have already used this discount code")

    return ValidationResult(
        valid=True,
        code_id=discount.id,
        code=discount.code,
        type=discount.type,
        discount_amount=compute_amount(discount, cart_total),
        label=discount_label(discount),
        free_shipping=discount.type == DiscountType.FREE_SHIPPING,
    )


def record_use(db: Session, code_id: int, user_id: int, order_id: int) -> tuple[DiscountCodeUse, bool]:
    """Add the ledger row and bump ``uses_count`` in the caller's transaction.

    Returns ``(use, created)``; an existing row for the same order is returned
    untouched. Nothing is committed here.
    """
    existing = db.scalar(
        select(DiscountCodeUse).where(DiscountCodeUse.code_id == code_id, DiscountCodeUse.order_id == order_id)
    )
    if existing:
        return existing, False

    bumped = db.execute(
        update(DiscountCode)
        .where(
            DiscountCode.id == code_id,
            or_(DiscountCode.max_uses.is_(None), DiscountCode.uses_count < DiscountCode.max_uses),
        )
        .values(uses_count=DiscountCode.uses_count + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount == 0:
        if db.get(DiscountCode, code_id) is None:
            raise NotFoundError("Discount code not found")
        raise DiscountRejectedError(
            "This discount code has reached its usage limit", code=DiscountError.USAGE_LIMIT_REACHED
        )
    use = DiscountCodeUse(code_id=code_id, user_id=user_id, order_id=order_id)
    db.add(use)
    db.flush()
    return use, True


def apply_code(db: Session, code_id: int, user_id: int, order_id: int) -> tuple[DiscountCodeUse, bool]:
    """Record that ``order_id`` redeemed ``code_id``. Safe to retry."""
    try:
        use, created = record_use(db, code_id, user_id, order_id)
        db.commit()
    except IntegrityError:
        # A concurrent retry inserted the same (code, order) row first
        db.rollback()
        use = db.scalar(
            select(DiscountCodeUse).where(DiscountCodeUse.code_id == code_id, DiscountCodeUse.order_id == order_id)
        )
        if use is None:
            raise
        return use, False
    except Exception:
        db.rollback()
        raise
    if created:
        logger.info("Discount code %s redeemed by user %s on order %s", code_id, user_id, order_id)
    db.expire_all()
    return use, created


# Admin management

_EDITABLE = (
    "description", "type", "value", "max_discount", "min_order_amount", "max_uses",
    "per_user_limit", "valid_from", "valid_until", "is_active",
)


def _check_rules(discount: DiscountCode) -> None:
    if discount.type not in DiscountType.ALL:
        raise ValidationFailedError(f"Discount type must be one of: {', '.join(DiscountType.ALL)}")
    if discount.value is None or discount.value < 0:
        raise ValidationFailedError("Discount value must not be negative")
    if discount.type == DiscountType.PERCENTAGE and discount.value > 100:
        raise ValidationFailedError("Percentage discounts cannot exceed 100")
    if discount.valid_from and discount.valid_until and discount.valid_until < discount.valid_from:
        raise ValidationFailedError("valid_until must be after valid_from")


def list_codes(db: Session) -> list[DiscountCode]:
    return list(db.scalars(select(DiscountCode).order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc())))


def get_code(db: Session, code_id: int) -> DiscountCode:
    discount = db.get(DiscountCode, code_id)
    if not discount:
        raise NotFoundError("Discount code not found")
    return discount


def create_code(db: Session, code: str, **fields) -> DiscountCode:
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationFailedError("Code is required")
    if get_by_code(db, normalized):
        raise ValidationFailedError(f"Discount code {normalized} already exists")
    discount = DiscountCode(code=normalized, **{k: v for k, v in fields.items() if k in _EDITABLE and v is not None})
    if discount.value is None:
        discount.value = 0
    _check_rules(discount)
    db.add(discount)
    db.commit()
    db.refresh(discount)
    logger.info("Discount code %s created (%s %s)", discount.code, discount.type, discount.value)
    return discount


def update_code(db: Session, code_id: int, **fields) -> DiscountCode:
    discount = get_code(db, code_id)
    if fields.get("code") is not None:
        normalized = normalize_code(fields["code"])
        clash = get_by_code(db, normalized)
        if clash and clash.id != discount.id:
            raise ValidationFailedError(f"Discount code {normalized} already exists")
        discount.code = normalized
    for key, value in fields.items():
        if key in _EDITABLE:
            setattr(discount, key, value)
    _check_rules(discount)
    db.commit()
    db.refresh(discount)
    logger.info("Discount code %s updated", discount.code)
    return discount


def delete_code(db: Session, code_id: int) -> None:
    discount = get_code(db, code_id)
    db.delete(discount)
    db.commit()
    logger.info("Discount code %s deleted", discount.code)
