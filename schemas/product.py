from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: int = Field(ge=1)
    original_price: Optional[int] = Field(default=None, ge=1)
    stock: int = Field(default=0, ge=0)
    tags: Optional[List[str]] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=1)
    original_price: Optional[int] = Field(default=None, ge=1)
    stock: Optional[int] = Field(default=None, ge=0)
    tags: Optional[List[str]] = None


class ProductOut(BaseModel):
    id: int
    seller_id: int
    name: str
    description: Optional[str] = None
    price: int
    original_price: Optional[int] = None
    stock: int
    tags: Optional[List[str]] = None
    status: str
    rejection_reason: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProductRejection(BaseModel):
    reason: str = Field(min_length=1)
