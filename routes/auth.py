from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.auth import SendOtpRequest, VerifyOtpRequest
from services.otp import send_otp, verify_otp

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/send-otp")
def send_code(data: SendOtpRequest, db: Session = Depends(get_db)):
    send_otp(db, data.email, data.purpose)
    return {"success": True, "detail": "OTP sent"}


@router.post("/verify-otp")
def verify_code(data: VerifyOtpRequest, db: Session = Depends(get_db)):
    if not verify_otp(db, data.email, data.code, data.purpose):
        raise HTTPException(status_code=400, detail="Invalid or expired code")
    return {"success": True, "detail": "Verified"}
