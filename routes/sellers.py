from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_current_user, require_roles, require_super_admin
from models.user import User
from schemas.users import AppealRequest, ReasonRequest, UserCreate, UserOut, VerificationRequest
from services import users as users_service

router = APIRouter(prefix="/api", tags=["sellers"])


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/admin/users", response_model=UserOut, status_code=201)
def provision_user(data: UserCreate, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.create_user(db, data.email, data.username, data.role, data.full_name, data.phone)


@router.post("/seller/verification", response_model=UserOut)
def submit_verification(data: VerificationRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return users_service.submit_verification(db, user, data.shop_location, data.shop_type)


@router.post("/seller/appeal", response_model=UserOut)
def submit_appeal(data: AppealRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return users_service.submit_appeal(db, user, data.text)


@router.get("/admin/sellers/pending", response_model=List[UserOut])
def pending_sellers(_: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.list_pending_sellers(db)


@router.get("/admin/sellers/terminated", response_model=List[UserOut])
def terminated_users(_: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.list_terminated(db)


@router.post("/admin/sellers/{user_id}/approve", response_model=UserOut)
def approve(user_id: int, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.approve_seller(db, user_id)


@router.post("/admin/sellers/{user_id}/reject", response_model=UserOut)
def reject(user_id: int, data: ReasonRequest, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.reject_seller(db, user_id, data.reason)


@router.post("/admin/sellers/{user_id}/terminate", response_model=UserOut)
def terminate(user_id: int, data: ReasonRequest, admin: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    if not data.reason or not data.reason.strip():
        raise HTTPException(status_code=400, detail="A reason is required")
    return users_service.terminate_user(db, admin, user_id, data.reason)


@router.post("/admin/sellers/{user_id}/restore", response_model=UserOut)
def restore(user_id: int, _: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    return users_service.restore_user(db, user_id)


@router.post("/admin/users/{user_id}/promote", response_model=UserOut)
def promote(user_id: int, admin: User = Depends(require_super_admin), db: Session = Depends(get_db)):
    return users_service.promote_to_admin(db, admin, user_id)


@router.post("/admin/users/{user_id}/demote", response_model=UserOut)
def demote(user_id: int, admin: User = Depends(require_super_admin), db: Session = Depends(get_db)):
    return users_service.demote_admin(db, admin, user_id)
