from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user
from models.user import User
from schemas.cart import CartAdd, CartItemOut, CartOut, CartUpdate
from services import cart as cart_service

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    items = cart_service.list_cart(db, user)
    return CartOut(items=[CartItemOut.model_validate(i) for i in items], subtotal=cart_service.cart_subtotal(items))


@router.post("", response_model=CartItemOut, status_code=201)
def add_item(data: CartAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.add_to_cart(db, user, data.product_id, data.quantity)


@router.patch("/{item_id}", response_model=CartOut)
def update_item(item_id: int, data: CartUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart_service.update_quantity(db, user, item_id, data.quantity)
    items = cart_service.list_cart(db, user)
    return CartOut(items=[CartItemOut.model_validate(i) for i in items], subtotal=cart_service.cart_subtotal(items))


@router.delete("/{item_id}", status_code=204)
def remove_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart_service.remove_item(db, user, item_id)
