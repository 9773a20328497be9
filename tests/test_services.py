from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from core import config as core_config
from core.clock import isoformat_utc, utcnow
from core.exceptions import DeliveryError, PermissionDeniedError, ValidationFailedError
from models.otp import OtpCode
from models.user import Role, VerificationStatus
from services import email as email_service
from services import newsletter as newsletter_service
from services import notifications as notifications_service
from services import users as users_service
from services.email import deliver_via_smtp, render_template, send_email
from services.otp import send_otp, verify_otp


class TestClock:
    def test_stored_times_are_naive_utc(self):
        now = utcnow()
        assert now.tzinfo is None
        assert abs((datetime.now(timezone.utc).replace(tzinfo=None) - now).total_seconds()) < 5

    def test_event_timestamps_carry_offset(self):
        assert isoformat_utc(datetime(2026, 5, 1, 9, 30)) == "2026-05-01T09:30:00+00:00"


class TestEmailService:
    """Test cases for email service"""

    def test_render_order_status_template(self):
        html = render_template("emails/order_status.html", {
            "order_id": 7, "order_number": "EH-20260501-001", "status": "shipped",
            "status_label": "Shipped", "note": "On the way",
        })
        assert "EH-20260501-001" in html
        assert "On the way" in html
        assert str(utcnow().year) in html

    def test_render_escapes_user_text(self):
        html = render_template("emails/admin_message.html", {"title": "Hi", "message": "<script>x</script>"})
        assert "<script>x</script>" not in html
        assert "&lt;script&gt;" in html

    def test_send_email_queues_task(self):
        with patch("services.email.send_email_task") as task:
            send_email("buyer@example.com", "Subject", "<p>Hi</p>")
        task.delay.assert_called_once_with("buyer@example.com", "Subject", "<p>Hi</p>")

    def test_send_email_broker_failure_raises(self):
        with patch("services.email.send_email_task") as task:
            task.delay.side_effect = ConnectionError("redis down")
            with pytest.raises(DeliveryError):
                send_email("buyer@example.com", "Subject", "<p>Hi</p>")

    def test_send_email_requires_recipient(self):
        with pytest.raises(DeliveryError):
            send_email("", "Subject", "<p>Hi</p>")

    def test_smtp_not_configured(self, monkeypatch):
        monkeypatch.setattr(core_config.settings, "SMTP_USERNAME", "")
        assert deliver_via_smtp("buyer@example.com", "Subject", "<p>Hi</p>") is False

    def test_smtp_delivery(self, monkeypatch):
        monkeypatch.setattr(core_config.settings, "SMTP_USERNAME", "mailer@ecohaat.bd")
        monkeypatch.setattr(core_config.settings, "SMTP_PASSWORD", "secret")
        with patch("services.email.smtplib.SMTP") as smtp:
            server = MagicMock()
            smtp.return_value.__enter__.return_value = server
            assert deliver_via_smtp("buyer@example.com", "Subject", "<p>Hi</p>") is True
        smtp.assert_called_once_with(
            core_config.settings.SMTP_HOST, core_config.settings.SMTP_PORT,
            timeout=core_config.settings.SMTP_TIMEOUT_SECONDS,
        )
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer@ecohaat.bd", "secret")
        server.send_message.assert_called_once()


class TestNotificationDispatch:
    def test_dispatch_counts_clean_notices(self, db, buyer, mock_email_send):
        notices = [
            notifications_service.Notice(buyer.id, "Hello", "World"),
            notifications_service.Notice(
                None, "", "",
                email=notifications_service.admin_message_email("ops@ecohaat.bd", "Hi", "There"),
            ),
        ]
        assert notifications_service.dispatch(db, notices) == 2
        assert len(mock_email_send) == 1
        assert mock_email_send[0]["subject"] == "📢 Hi - EcoHaat"

    def test_dispatch_survives_mail_failure(self, db, buyer, monkeypatch):
        def _broken(to_email, subject, body):
            raise DeliveryError("broker down")

        monkeypatch.setattr(email_service, "send_email", _broken)
        notice = notifications_service.Notice(
            buyer.id, "Hello", "World",
            email=notifications_service.order_status_email(buyer.email, 1, "EH-20260501-001", "shipped", "note"),
        )
        assert notifications_service.dispatch(db, [notice]) == 0
        assert len(notifications_service.list_for_user(db, buyer)) == 1

    def test_notification_centre(self, db, buyer, make_user):
        other = make_user("other@example.com")
        notifications_service.dispatch(db, [
            notifications_service.Notice(buyer.id, "One", "1"),
            notifications_service.Notice(buyer.id, "Two", "2"),
            notifications_service.Notice(other.id, "Theirs", "3"),
        ])
        assert notifications_service.unread_count(db, buyer) == 2

        first = notifications_service.list_for_user(db, buyer)[-1]
        notifications_service.mark_read(db, buyer, first.id)
        assert notifications_service.unread_count(db, buyer) == 1
        assert notifications_service.mark_all_read(db, buyer) == 1
        assert notifications_service.unread_count(db, buyer) == 0
        assert notifications_service.unread_count(db, other) == 1

    def test_admin_recipients_include_fallback(self, db, admin):
        assert notifications_service.admin_recipients(db) == [admin.email, "ops@ecohaat.bd"]


class TestOtp:
    def test_send_stores_hash_and_mails_code(self, db, mock_email_send):
        code = send_otp(db, "New.User@Example.com", "registration")

        otp = db.scalar(select(OtpCode))
        assert len(code) == 6 and code.isdigit()
        assert otp.email == "new.user@example.com"
        assert otp.code_hash != code
        assert mock_email_send[0]["subject"] == f"{code} is your Eco-Haat verification code"
        assert code in mock_email_send[0]["body"]

    def test_verify_consumes_code(self, db):
        code = send_otp(db, "user@example.com", "login")
        assert verify_otp(db, "user@example.com", code, "login") is True
        assert verify_otp(db, "user@example.com", code, "login") is False

    def test_purpose_must_match(self, db):
        code = send_otp(db, "user@example.com", "forgot_password")
        assert verify_otp(db, "user@example.com", code, "login") is False
        assert verify_otp(db, "user@example.com", code, "forgot_password") is True

    def test_wrong_code_counts_attempts(self, db):
        code = send_otp(db, "user@example.com")
        wrong = "000000" if code != "000000" else "111111"
        for _ in range(core_config.settings.OTP_MAX_ATTEMPTS):
            assert verify_otp(db, "user@example.com", wrong) is False
        assert verify_otp(db, "user@example.com", code) is False

    def test_expired_code(self, db):
        code = send_otp(db, "user@example.com")
        otp = db.scalar(select(OtpCode))
        otp.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()
        assert verify_otp(db, "user@example.com", code) is False

    def test_new_code_replaces_old(self, db):
        old = send_otp(db, "user@example.com")
        new = send_otp(db, "user@example.com")
        if old != new:
            assert verify_otp(db, "user@example.com", old) is False
        assert verify_otp(db, "user@example.com", new) is True

    def test_unknown_purpose(self, db):
        with pytest.raises(ValidationFailedError):
            send_otp(db, "user@example.com", "signup")


class TestNewsletter:
    def test_subscribe_is_idempotent(self, db):
        newsletter_service.subscribe(db, "Reader@Example.com")
        newsletter_service.subscribe(db, "reader@example.com")
        assert newsletter_service.subscriber_count(db) == 1

    def test_unsubscribe(self, db):
        newsletter_service.subscribe(db, "reader@example.com")
        assert newsletter_service.unsubscribe(db, "reader@example.com") is True
        assert newsletter_service.unsubscribe(db, "reader@example.com") is False
        assert newsletter_service.subscriber_count(db) == 0

    def test_broadcast_counts_failures(self, db, monkeypatch):
        for email in ("a@example.com", "b@example.com", "c@example.com"):
            newsletter_service.subscribe(db, email)
        newsletter_service.unsubscribe(db, "c@example.com")
        sent = []

        def _flaky(to_email, subject, body):
            if to_email == "b@example.com":
                raise DeliveryError("mailbox full")
            sent.append(to_email)

        monkeypatch.setattr(email_service, "send_email", _flaky)
        result = newsletter_service.broadcast(db, "Monsoon picks", "<p>New arrivals</p>", "Fresh stock")

        assert result == {"sent": 1, "failed": 1, "total": 2}
        assert sent == ["a@example.com"]

    def test_broadcast_requires_content(self, db):
        with pytest.raises(ValidationFailedError):
            newsletter_service.broadcast(db, "Subject", "   ")


class TestSellerVerification:
    def test_create_user_assigns_code(self, db):
        user = users_service.create_user(db, "Shop@Example.com", "Clay Works", Role.UNVERIFIED_SELLER)
        assert user.user_code.startswith("SLR-")
        assert user.email == "shop@example.com"

    def test_duplicate_email(self, db, buyer):
        with pytest.raises(ValidationFailedError):
            users_service.create_user(db, buyer.email, "dup")

    def test_approve_flow(self, db, make_user, admin):
        applicant = make_user("potter@example.com", role=Role.UNVERIFIED_SELLER)
        users_service.submit_verification(db, applicant, "Savar, Dhaka", "handicraft")
        assert applicant.verification_status == VerificationStatus.PENDING
        assert users_service.list_pending_sellers(db) == [applicant]

        users_service.approve_seller(db, applicant.id)
        assert applicant.role == Role.SELLER
        assert applicant.verification_status == VerificationStatus.VERIFIED
        assert notifications_service.list_for_user(db, applicant)[0].title == "Seller Verification Approved"

    def test_reject_then_appeal(self, db, make_user):
        applicant = make_user("potter@example.com", role=Role.UNVERIFIED_SELLER)
        users_service.submit_verification(db, applicant, "Savar, Dhaka")
        users_service.reject_seller(db, applicant.id)
        assert applicant.rejection_reason == users_service.DEFAULT_REJECTION_REASON

        users_service.submit_appeal(db, applicant, "Uploaded clearer documents")
        assert applicant.verification_status == VerificationStatus.PENDING

    def test_terminate_and_restore(self, db, seller, admin):
        users_service.terminate_user(db, admin, seller.id, "Counterfeit goods")
        assert seller.role == Role.BUYER
        assert seller.verification_status == VerificationStatus.TERMINATED

        users_service.submit_appeal(db, seller, "They were genuine")
        assert seller.verification_status == VerificationStatus.TERMINATED
        assert seller.appeal_text == "They were genuine"

        users_service.restore_user(db, seller.id)
        assert seller.role == Role.SELLER
        assert seller.appeal_text is None

    def test_only_super_admin_manages_admins(self, db, admin, super_admin, buyer):
        with pytest.raises(PermissionDeniedError):
            users_service.promote_to_admin(db, admin, buyer.id)
        users_service.promote_to_admin(db, super_admin, buyer.id)
        assert buyer.role == Role.ADMIN
        users_service.demote_admin(db, super_admin, buyer.id)
        assert buyer.role == Role.BUYER
        with pytest.raises(PermissionDeniedError):
            users_service.demote_admin(db, super_admin, super_admin.id)
