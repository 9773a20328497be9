"""User profiles, the seller verification workflow and admin role management."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from models.user import Role, User, VerificationStatus
from services import notifications
from services.identifiers import next_user_code
from services.notifications import Notice

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Documents did not match requirements."
SELF_SERVICE_ROLES = (Role.BUYER, Role.UNVERIFIED_SELLER)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def create_user(
    db: Session,
    email: str,
    username: str,
    role: str = Role.BUYER,
    full_name: str | None = None,
    phone: str | None = None,
) -> User:
    """Create the profile row for an account registered with the auth provider."""
    email = email.strip().lower()
    if role not in (Role.BUYER, Role.SELLER, Role.UNVERIFIED_SELLER, Role.ADMIN):
        raise ValidationFailedError(f"Unknown role '{role}'")
    if db.scalar(select(User).where(User.email == email)):
        raise ValidationFailedError("Email already registered")

    for attempt in range(3):
        user = User(
            user_code=next_user_code(db, role),
            email=email,
            username=username.strip(),
            full_name=full_name,
            phone=phone,
            role=role,
        )
        db.add(user)
        try:
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            logger.warning("User code %s taken, retrying (attempt %d)", user.user_code, attempt + 1)
    else:
        raise ValidationFailedError("Could not allocate a user code, please retry")
    db.refresh(user)
    logger.info("User %s (%s) created as %s", user.user_code, user.email, user.role)
    return user


def _notify(db: Session, user: User, title: str, message: str, type: str) -> None:
    notifications.dispatch(db, [Notice(user.id, title, message, type)])


# Seller verification

def submit_verification(db: Session, user: User, shop_location: str, shop_type: str | None = None) -> User:
    if user.role not in (Role.UNVERIFIED_SELLER, Role.BUYER):
        raise ValidationFailedError("Only unverified sellers can apply for verification")
    if user.verification_status in (VerificationStatus.PENDING, VerificationStatus.TERMINATED):
        raise ValidationFailedError(f"Verification is {user.verification_status}")
    if not (shop_location or "").strip():
        raise ValidationFailedError("Shop location is required")
    user.role = Role.UNVERIFIED_SELLER
    user.verification_status = VerificationStatus.PENDING
    user.shop_location = shop_location.strip()
    user.shop_type = shop_type
    user.rejection_reason = None
    db.commit()
    logger.info("Seller %s submitted verification", user.id)

    notifications.dispatch(db, [
        Notice(admin_id, "Seller Verification Request", f"{user.display_name} is waiting for verification.")
        for admin_id in notifications.admin_user_ids(db)
    ])
    return user


def submit_appeal(db: Session, user: User, text: str) -> User:
    """Rejected sellers go back to pending review; terminated accounts wait for an admin."""
    text = (text or "").strip()
    if not text:
        raise ValidationFailedError("Appeal text is required")
    if user.verification_status == VerificationStatus.REJECTED:
        user.verification_status = VerificationStatus.PENDING
    elif user.verification_status != VerificationStatus.TERMINATED:
        raise ValidationFailedError("Only rejected or terminated accounts can appeal")
    user.appeal_text = text
    db.commit()
    logger.info("User %s submitted an appeal (%s)", user.id, user.verification_status)

    notifications.dispatch(db, [
        Notice(admin_id, "New Appeal", f"{user.display_name} appealed: {text}", "warning")
        for admin_id in notifications.admin_user_ids(db)
    ])
    return user


def list_pending_sellers(db: Session) -> list[User]:
    stmt = select(User).where(User.verification_status == VerificationStatus.PENDING).order_by(User.updated_at)
    return list(db.scalars(stmt))


def list_terminated(db: Session) -> list[User]:
    return list(db.scalars(select(User).where(User.verification_status == VerificationStatus.TERMINATED)))


def approve_seller(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user.verification_status != VerificationStatus.PENDING:
        raise ValidationFailedError("Seller has no pending verification")
    user.verification_status = VerificationStatus.VERIFIED
    user.role = Role.SELLER
    user.rejection_reason = None
    user.appeal_text = None
    db.commit()
    logger.info("Seller %s approved", user.id)
    _notify(db, user, "Seller Verification Approved",
            "Congratulations! Your seller account has been approved. You can now list products.", "success")
    return user


def reject_seller(db: Session, user_id: int, reason: str | None = None) -> User:
    user = get_user(db, user_id)
    if user.verification_status != VerificationStatus.PENDING:
        raise ValidationFailedError("Seller has no pending verification")
    reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
    user.verification_status = VerificationStatus.REJECTED
    user.rejection_reason = reason
    db.commit()
    logger.info("Seller %s rejected: %s", user.id, reason)
    _notify(db, user, "Seller Verification Rejected",
            f"Your seller verification request was rejected. Reason: {reason}", "error")
    return user


def terminate_user(db: Session, actor: User, user_id: int, reason: str) -> User:
    user = get_user(db, user_id)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailedError("A reason is required to terminate an account")
    if user.id == actor.id or user.role == Role.ADMIN:
        raise PermissionDeniedError("Admins cannot be terminated")
    user.verification_status = VerificationStatus.TERMINATED
    user.termination_reason = reason
    user.role = Role.BUYER
    db.commit()
    logger.info("User %s terminated by admin %s: %s", user.id, actor.id, reason)
    _notify(db, user, "Account Terminated", f"Your account has been terminated. Reason: {reason}", "error")
    return user


def restore_user(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user.verification_status != VerificationStatus.TERMINATED:
        raise ValidationFailedError("Account is not terminated")
    user.verification_status = VerificationStatus.VERIFIED
    user.termination_reason = None
    user.appeal_text = None
    user.role = Role.SELLER
    db.commit()
    logger.info("User %s restored", user.id)
    _notify(db, user, "Account Restored",
            "Your account has been restored. You can now access your dashboard again.", "success")
    return user


# Admin roles (super admins only)

def _require_super_admin(actor: User) -> None:
    if actor.role != Role.ADMIN or not actor.is_super_admin:
        raise PermissionDeniedError("Only super admins can manage admins")


def promote_to_admin(db: Session, actor: User, user_id: int) -> User:
    _require_super_admin(actor)
    user = get_user(db, user_id)
    if user.role == Role.ADMIN:
        raise ValidationFailedError("User is already an admin")
    user.role = Role.ADMIN
    db.commit()
    logger.info("User %s promoted to admin by %s", user.id, actor.id)
    _notify(db, user, "Admin Access Granted", "You have been made an Eco-Haat admin.", "success")
    return user


def demote_admin(db: Session, actor: User, user_id: int) -> User:
    _require_super_admin(actor)
    user = get_user(db, user_id)
    if user.role != Role.ADMIN:
        raise ValidationFailedError("User is not an admin")
    if user.is_super_admin:
        raise PermissionDeniedError("Super admins cannot be demoted")
    user.role = Role.BUYER
    db.commit()
    logger.info("Admin %s demoted by %s", user.id, actor.id)
    return user
