from typing import Literal

from pydantic import BaseModel, EmailStr, Field

OtpPurpose = Literal["registration", "forgot_password", "login"]


class SendOtpRequest(BaseModel):
    email: EmailStr
    purpose: OtpPurpose = "registration"


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")
    purpose: OtpPurpose = "registration"
