from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=1, max_length=150)
    role: Literal["buyer", "seller", "uv-seller", "admin"] = "buyer"
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)


class UserOut(BaseModel):
    id: int
    user_code: Optional[str] = None
    username: str
    email: EmailStr
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_super_admin: bool
    verification_status: str
    shop_location: Optional[str] = None
    shop_type: Optional[str] = None
    rejection_reason: Optional[str] = None
    termination_reason: Optional[str] = None
    appeal_text: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VerificationRequest(BaseModel):
    shop_location: str = Field(min_length=1, max_length=255)
    shop_type: Optional[str] = Field(default=None, max_length=50)


class AppealRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class ReasonRequest(BaseModel):
    reason: Optional[str] = None
