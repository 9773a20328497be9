from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user, require_roles
from models.user import User
from schemas.discount import DiscountApplyRequest, DiscountCodeIn, DiscountCodeOut, DiscountCodeUpdate, DiscountValidateRequest
from services import discount as discount_service
from services import order_lifecycle as lifecycle

router = APIRouter(prefix="/api", tags=["discounts"])


@router.post("/discount/validate")
def validate_discount(data: DiscountValidateRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if data.user_id is not None and data.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Cannot validate codes for another user")
    user_id = data.user_id if data.user_id is not None else user.id
    result = discount_service.validate_code(db, data.code, data.cart_total, user_id)
    return result.as_response()


@router.post("/discount/apply")
def apply_discount(data: DiscountApplyRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if data.user_id is not None and data.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Cannot apply codes for another user")
    lifecycle.get_order(db, user, data.order_id)
    use, created = discount_service.apply_code(db, data.code_id, data.user_id or user.id, data.order_id)
    return {"success": True, "created": created, "use_id": use.id}


@router.get("/admin/discounts", response_model=List[DiscountCodeOut])
def list_discounts(_: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return discount_service.list_codes(db)


@router.post("/admin/discounts", response_model=DiscountCodeOut, status_code=201)
def create_discount(data: DiscountCodeIn, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    fields = data.model_dump()
    code = fields.pop("code")
    return discount_service.create_code(db, code, **fields)


@router.get("/admin/discounts/{code_id}", response_model=DiscountCodeOut)
def get_discount(code_id: int, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return discount_service.get_code(db, code_id)


@router.put("/admin/discounts/{code_id}", response_model=DiscountCodeOut)
def update_discount(
    code_id: int, data: DiscountCodeUpdate, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)
):
    return discount_service.update_code(db, code_id, **data.model_dump(exclude_unset=True))


@router.delete("/admin/discounts/{code_id}", status_code=204)
def delete_discount(code_id: int, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    discount_service.delete_code(db, code_id)
