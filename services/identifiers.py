from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.clock import utcnow
from models.order import Order
from models.user import User, Role

ORDER_PREFIX = "EH"
USER_PREFIXES = {
    Role.BUYER: "USR",
    Role.SELLER: "SLR",
    Role.UNVERIFIED_SELLER: "SLR",
    Role.ADMIN: "ADM",
}


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, now.day)
    return start, start + timedelta(days=1)


def format_daily_id(prefix: str, now: datetime, sequence: int) -> str:
    return f"{prefix}-{now:%Y%m%d}-{sequence:03d}"


def next_order_number(db: Session, now: datetime | None = None) -> str:
    """EH-YYYYMMDD-NNN where NNN is one more than the orders already placed that day."""
    now = now or utcnow()
    start, end = _day_bounds(now)
    count = db.scalar(select(func.count(Order.id)).where(Order.created_at >= start, Order.created_at < end))
    return format_daily_id(ORDER_PREFIX, now, (count or 0) + 1)


def next_user_code(db: Session, role: str, now: datetime | None = None) -> str:
    now = now or utcnow()
    prefix = USER_PREFIXES.get(role, "USR")
    pattern = f"{prefix}-{now:%Y%m%d}-%"
    count = db.scalar(select(func.count(User.id)).where(User.user_code.like(pattern)))
    return format_daily_id(prefix, now, (count or 0) + 1)
