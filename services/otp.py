import logging
import secrets

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.clock import utcnow
from core.config import settings
from core.exceptions import ValidationFailedError
from models.otp import OtpCode
from security.hashing import hash_code, verify_code_hash
from services.email import send_templated_email

logger = logging.getLogger(__name__)

OTP_PURPOSES = {
    "registration": {
        "title": "Verify Your Email",
        "message": "You're almost there! Use this code to verify your email and complete your registration.",
        "subject": "{code} is your Eco-Haat verification code",
    },
    "forgot_password": {
        "title": "Reset Your Password",
        "message": "We received a request to reset your password. Use this code to proceed.",
        "subject": "{code} - Reset your Eco-Haat password",
    },
    "login": {
        "title": "Login Verification",
        "message": "Use this code to log in to your Eco-Haat account.",
        "subject": "{code} - Your Eco-Haat login code",
    },
}


def _generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _check_purpose(purpose: str) -> dict:
    if purpose not in OTP_PURPOSES:
        raise ValidationFailedError(f"Unknown OTP purpose '{purpose}'")
    return OTP_PURPOSES[purpose]


def send_otp(db: Session, email: str, purpose: str = "registration") -> str:
    """Issue a fresh code for ``email``/``purpose`` and mail it; earlier codes stop working."""
    copy = _check_purpose(purpose)
    email = email.strip().lower()
    code = _generate_code()

    db.execute(
        update(OtpCode)
        .where(OtpCode.email == email, OtpCode.purpose == purpose, OtpCode.consumed.is_(False))
        .values(consumed=True)
    )
    db.add(OtpCode(
        email=email,
        purpose=purpose,
        code_hash=hash_code(code),
        expires_at=OtpCode.expiry(settings.OTP_TTL_SECONDS),
    ))
    db.commit()

    send_templated_email(
        email,
        copy["subject"].format(code=code),
        "emails/otp_code.html",
        {
            "title": copy["title"],
            "message": copy["message"],
            "code": code,
            "ttl_minutes": settings.OTP_TTL_SECONDS // 60,
        },
    )
    logger.info("OTP for %s issued to %s", purpose, email)
    return code


def verify_otp(db: Session, email: str, code: str, purpose: str = "registration") -> bool:
    """Check ``code`` against the latest live code; a match consumes it."""
    _check_purpose(purpose)
    email = email.strip().lower()
    otp = db.scalar(
        select(OtpCode)
        .where(OtpCode.email == email, OtpCode.purpose == purpose, OtpCode.consumed.is_(False))
        .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
    )
    if otp is None:
        return False

    now = utcnow()
    if otp.is_expired(now) or otp.attempts >= settings.OTP_MAX_ATTEMPTS:
        otp.consumed = True
        db.commit()
        return False

    if not verify_code_hash(code, otp.code_hash):
        otp.attempts += 1
        if otp.attempts >= settings.OTP_MAX_ATTEMPTS:
            otp.consumed = True
            logger.warning("OTP for %s locked after %d failed attempts", email, otp.attempts)
        db.commit()
        return False

    otp.consumed = True
    db.commit()
    logger.info("OTP for %s verified for %s", email, purpose)
    return True
