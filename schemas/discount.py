from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DiscountValidateRequest(BaseModel):
    code: str
    cart_total: int = Field(alias="cartTotal", ge=0)
    user_id: Optional[int] = Field(default=None, alias="userId")

    class Config:
        populate_by_name = True


class DiscountApplyRequest(BaseModel):
    code_id: int = Field(alias="codeId")
    user_id: Optional[int] = Field(default=None, alias="userId")
    order_id: int = Field(alias="orderId")

    class Config:
        populate_by_name = True


class DiscountCodeIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: Optional[str] = None
    type: str
    value: int = Field(default=0, ge=0)
    max_discount: Optional[int] = Field(default=None, ge=0)
    min_order_amount: int = Field(default=0, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    per_user_limit: Optional[int] = Field(default=1, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class DiscountCodeUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    type: Optional[str] = None
    value: Optional[int] = Field(default=None, ge=0)
    max_discount: Optional[int] = Field(default=None, ge=0)
    min_order_amount: Optional[int] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    per_user_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class DiscountCodeOut(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    type: str
    value: int
    max_discount: Optional[int] = None
    min_order_amount: int
    max_uses: Optional[int] = None
    uses_count: int
    per_user_limit: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
