from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.db import Base


class Role:
    BUYER = "buyer"
    SELLER = "seller"
    UNVERIFIED_SELLER = "uv-seller"
    ADMIN = "admin"


class VerificationStatus:
    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    TERMINATED = "terminated"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)  # USR/SLR/ADM-YYYYMMDD-NNN
    username: Mapped[str] = mapped_column(String(150))  # display name or shop name
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=Role.BUYER, index=True)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Seller verification
    verification_status: Mapped[str] = mapped_column(String(20), default=VerificationStatus.NONE, index=True)
    shop_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shop_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    appeal_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
