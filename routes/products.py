from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user, require_roles
from models.user import User
from schemas.product import ProductCreate, ProductOut, ProductRejection, ProductUpdate
from services import products as products_service

router = APIRouter(prefix="/api", tags=["products"])


@router.get("/products", response_model=List[ProductOut])
def list_products(db: Session = Depends(get_db)):
    return products_service.list_public(db)


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return products_service.get_public_product(db, product_id)


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, user: User = Depends(require_roles("seller")), db: Session = Depends(get_db)):
    return products_service.create_product(db, user, **data.model_dump())


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    data: ProductUpdate,
    user: User = Depends(require_roles("seller", "admin")),
    db: Session = Depends(get_db),
):
    return products_service.update_product(db, user, product_id, **data.model_dump(exclude_unset=True))


@router.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: int, user: User = Depends(require_roles("seller", "admin")), db: Session = Depends(get_db)):
    products_service.deactivate_product(db, user, product_id)


@router.get("/seller/products", response_model=List[ProductOut])
def my_products(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return products_service.list_for_seller(db, user)


# Admin

@router.get("/admin/products/pending", response_model=List[ProductOut])
def pending_products(_: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return products_service.list_pending(db)


@router.post("/admin/products/{product_id}/approve", response_model=ProductOut)
def approve_product(product_id: int, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return products_service.approve_product(db, product_id)


@router.post("/admin/products/{product_id}/reject", response_model=ProductOut)
def reject_product(
    product_id: int,
    data: ProductRejection,
    _: User = Depends(require_roles("admin")),
    db: Session = Depends(get_db),
):
    return products_service.reject_product(db, product_id, data.reason)
