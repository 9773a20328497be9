from datetime import timedelta

import pytest
from sqlalchemy import func, select

from core.clock import utcnow
from core.exceptions import DiscountRejectedError, ValidationFailedError
from models.discount import DiscountCode, DiscountCodeUse, DiscountType
from services import discount as discount_service
from services.discount import DiscountError


@pytest.fixture
def make_code(db):
    def _make(code="ECO20", type=DiscountType.PERCENTAGE, value=20, **extra):
        discount = DiscountCode(code=code, type=type, value=value, **extra)
        db.add(discount)
        db.commit()
        db.refresh(discount)
        return discount
    return _make


class TestDiscountMath:
    def test_percentage_is_capped(self, db, make_code):
        make_code(value=20, max_discount=500)
        result = discount_service.validate_code(db, "ECO20", 5000)
        assert result.valid
        assert result.discount_amount == 500
        assert result.label == "20% off"

    def test_percentage_below_cap(self, db, make_code):
        make_code(value=20, max_discount=500)
        assert discount_service.validate_code(db, "ECO20", 1000).discount_amount == 200

    def test_fixed_never_exceeds_cart(self, db, make_code):
        make_code("FLAT300", DiscountType.FIXED, 300)
        result = discount_service.validate_code(db, "FLAT300", 200)
        assert result.discount_amount == 200
        assert result.label == "৳300 off"

    def test_free_shipping(self, db, make_code):
        make_code("SHIPFREE", DiscountType.FREE_SHIPPING, 0)
        result = discount_service.validate_code(db, "SHIPFREE", 800)
        assert result.discount_amount == 0
        assert result.free_shipping is True
        assert result.label == "Free shipping"

    @pytest.mark.parametrize("cart_total,expected", [(1003, 150), (1010, 152), (1030, 155)])
    def test_rounds_half_up(self, db, make_code, cart_total, expected):
        make_code("FIFTEEN", value=15)
        assert discount_service.validate_code(db, "FIFTEEN", cart_total).discount_amount == expected

    def test_code_lookup_is_trimmed_and_case_insensitive(self, db, make_code):
        make_code()
        assert discount_service.validate_code(db, "  eco20 ", 1000).valid


class TestDiscountRules:
    """Rules are checked in order and the first failure wins"""

    def test_unknown_code(self, db):
        result = discount_service.validate_code(db, "NOPE", 1000)
        assert not result.valid
        assert result.error == DiscountError.NOT_FOUND
        assert result.as_response() == {"valid": False, "error": "NOT_FOUND", "message": "Invalid discount code"}

    def test_blank_code(self, db):
        assert discount_service.validate_code(db, "   ", 1000).error == DiscountError.NOT_FOUND

    def test_inactive(self, db, make_code):
        make_code(is_active=False, valid_until=utcnow() - timedelta(days=1))
        assert discount_service.validate_code(db, "ECO20", 1000).error == DiscountError.INACTIVE

    def test_not_yet_active(self, db, make_code):
        make_code(valid_from=utcnow() + timedelta(days=1))
        assert discount_service.validate_code(db, "ECO20", 1000).error == DiscountError.NOT_YET_ACTIVE

    def test_expired(self, db, make_code):
        make_code(valid_until=utcnow() - timedelta(minutes=1), max_uses=1, uses_count=1)
        assert discount_service.validate_code(db, "ECO20", 1000).error == DiscountError.EXPIRED

    def test_usage_limit(self, db, make_code):
        make_code(max_uses=10, uses_count=10, min_order_amount=5000)
        assert discount_service.validate_code(db, "ECO20", 1000).error == DiscountError.USAGE_LIMIT_REACHED

    def test_below_minimum(self, db, make_code):
        make_code(min_order_amount=1500)
        result = discount_service.validate_code(db, "ECO20", 1000)
        assert result.error == DiscountError.BELOW_MINIMUM
        assert "1500" in result.message

    def test_per_user_limit(self, db, buyer, product, place_order, make_code):
        code = make_code(per_user_limit=1, max_uses=100)
        order = place_order((product, 2))
        discount_service.apply_code(db, code.id, buyer.id, order.id)

        result = discount_service.validate_code(db, "ECO20", 1000, user_id=buyer.id)
        assert result.error == DiscountError.PER_USER_LIMIT_REACHED
        assert discount_service.validate_code(db, "ECO20", 1000).valid

    def test_success_payload(self, db, make_code):
        code = make_code()
        response = discount_service.validate_code(db, "eco20", 1000).as_response()
        assert response == {
            "valid": True,
            "discount": {
                "code_id": code.id, "code": "ECO20", "type": "percentage", "discount_amount": 200,
                "label": "20% off", "free_shipping": False,
            },
        }


class TestApplyCode:
    def test_apply_is_idempotent_per_order(self, db, buyer, product, place_order, make_code):
        code = make_code(max_uses=5)
        order = place_order((product, 1))

        first, created = discount_service.apply_code(db, code.id, buyer.id, order.id)
        again, created_again = discount_service.apply_code(db, code.id, buyer.id, order.id)

        assert created is True
        assert created_again is False
        assert first.id == again.id
        db.refresh(code)
        assert code.uses_count == 1
        assert db.scalar(select(func.count(DiscountCodeUse.id))) == 1

    def test_apply_refuses_past_max_uses(self, db, buyer, product, place_order, make_code):
        code = make_code(max_uses=1, per_user_limit=None)
        first = place_order((product, 1))
        second = place_order((product, 1))
        discount_service.apply_code(db, code.id, buyer.id, first.id)

        with pytest.raises(DiscountRejectedError) as exc:
            discount_service.apply_code(db, code.id, buyer.id, second.id)

        assert exc.value.code == DiscountError.USAGE_LIMIT_REACHED
        db.refresh(code)
        assert code.uses_count == 1
        assert db.scalar(select(func.count(DiscountCodeUse.id))) == 1


class TestCheckoutWithCode:
    def test_discount_applied_at_checkout(self, db, buyer, product, place_order, make_code):
        code = make_code(value=10)
        order = place_order((product, 2), discount_code="eco20")

        assert order.discount_amount == 100
        assert order.delivery_charge == 60
        assert order.cod_charge == 10  # ceil(1% of 960)
        assert order.total_amount == 1000 - 100 + 60 + 10
        assert order.discount_code_id == code.id
        db.refresh(code)
        assert code.uses_count == 1

    def test_free_shipping_at_checkout(self, db, product, place_order, make_code):
        make_code("SHIPFREE", DiscountType.FREE_SHIPPING, 0)
        order = place_order((product, 2), discount_code="SHIPFREE")
        assert order.delivery_charge == 0
        assert order.total_amount == 1010

    def test_rejected_code_blocks_checkout(self, db, buyer, product, place_order, make_code):
        make_code(min_order_amount=5000)
        with pytest.raises(DiscountRejectedError) as exc:
            place_order((product, 1), discount_code="ECO20")
        assert exc.value.code == DiscountError.BELOW_MINIMUM
        assert discount_service.list_codes(db)[0].uses_count == 0


class TestDiscountAdmin:
    def test_create_normalizes_code(self, db):
        discount = discount_service.create_code(db, "  summer10 ", type=DiscountType.PERCENTAGE, value=10)
        assert discount.code == "SUMMER10"
        assert discount.per_user_limit == 1

    def test_duplicate_code_rejected(self, db, make_code):
        make_code()
        with pytest.raises(ValidationFailedError):
            discount_service.create_code(db, "eco20", type=DiscountType.FIXED, value=50)

    def test_percentage_over_100_rejected(self, db):
        with pytest.raises(ValidationFailedError):
            discount_service.create_code(db, "HUGE", type=DiscountType.PERCENTAGE, value=150)

    def test_update_and_delete(self, db, make_code):
        code = make_code()
        updated = discount_service.update_code(db, code.id, is_active=False, max_uses=None)
        assert updated.is_active is False
        discount_service.delete_code(db, code.id)
        assert discount_service.list_codes(db) == []
