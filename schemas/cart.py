from typing import List

from pydantic import BaseModel, Field


class CartAdd(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)


class CartUpdate(BaseModel):
    quantity: int = Field(ge=0)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    product_name: str
    unit_price: int

    class Config:
        from_attributes = True


class CartOut(BaseModel):
    items: List[CartItemOut]
    subtotal: int
