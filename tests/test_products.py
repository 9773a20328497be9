import pytest

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from models.product import ProductStatus
from models.user import Role, VerificationStatus
from services import cart as cart_service
from services import notifications as notifications_service
from services import products as products_service


class TestListing:
    def test_verified_seller_lists_for_review(self, db, seller):
        product = products_service.create_product(
            db, seller, "  Clay Pot ", 200, stock=4, original_price=250, tags=["clay", "handmade"],
        )
        assert product.name == "Clay Pot"
        assert product.status == ProductStatus.PENDING
        assert product.tags == ["clay", "handmade"]
        assert products_service.list_public(db) == []
        assert products_service.list_pending(db) == [product]

    def test_unverified_seller_cannot_list(self, db, make_user):
        applicant = make_user("potter@example.com", role=Role.UNVERIFIED_SELLER,
                              verification_status=VerificationStatus.PENDING)
        with pytest.raises(PermissionDeniedError):
            products_service.create_product(db, applicant, "Clay Pot", 200)

    def test_buyer_cannot_list(self, db, buyer):
        with pytest.raises(PermissionDeniedError):
            products_service.create_product(db, buyer, "Clay Pot", 200)

    @pytest.mark.parametrize("price,original,stock", [(0, None, 1), (200, 150, 1), (200, None, -1)])
    def test_bad_numbers(self, db, seller, price, original, stock):
        with pytest.raises(ValidationFailedError):
            products_service.create_product(db, seller, "Clay Pot", price, stock=stock, original_price=original)


class TestReview:
    def test_approve_goes_live_and_notifies(self, db, seller):
        product = products_service.create_product(db, seller, "Clay Pot", 200, stock=4)

        products_service.approve_product(db, product.id)

        assert product.status == ProductStatus.APPROVED
        assert products_service.list_public(db) == [product]
        [note] = notifications_service.list_for_user(db, seller)
        assert note.title == "Product Approved"
        assert note.message == 'Your product "Clay Pot" has been approved and is now live.'
        assert note.type == "success"

    def test_reject_needs_reason_and_notifies(self, db, seller):
        product = products_service.create_product(db, seller, "Clay Pot", 200)
        with pytest.raises(ValidationFailedError):
            products_service.reject_product(db, product.id, "  ")
        assert product.status == ProductStatus.PENDING

        products_service.reject_product(db, product.id, "Blurry photos")

        assert product.rejection_reason == "Blurry photos"
        [note] = notifications_service.list_for_user(db, seller)
        assert note.title == "Product Rejected"
        assert note.message == 'Your product "Clay Pot" was rejected. Reason: Blurry photos'
        assert note.type == "error"

    def test_seller_edit_resubmits_rejected_product(self, db, seller):
        product = products_service.create_product(db, seller, "Clay Pot", 200)
        products_service.reject_product(db, product.id, "Blurry photos")

        products_service.update_product(db, seller, product.id, description="New photos")

        assert product.status == ProductStatus.PENDING
        assert product.rejection_reason is None

    def test_approve_twice(self, db, product):
        with pytest.raises(ValidationFailedError):
            products_service.approve_product(db, product.id)


class TestEditing:
    def test_owner_updates_given_fields(self, db, seller, product):
        products_service.update_product(db, seller, product.id, price=450, stock=None, name="Bamboo Brush")
        assert (product.name, product.price, product.stock) == ("Bamboo Brush", 450, 10)
        assert product.status == ProductStatus.APPROVED

    def test_other_seller_cannot_edit(self, db, other_seller, product):
        with pytest.raises(PermissionDeniedError):
            products_service.update_product(db, other_seller, product.id, price=1)

    def test_admin_can_edit(self, db, admin, product):
        products_service.update_product(db, admin, product.id, stock=3)
        assert product.stock == 3

    def test_deactivate_hides_product(self, db, seller, product):
        products_service.deactivate_product(db, seller, product.id)
        assert product.is_active is False
        assert products_service.list_public(db) == []
        with pytest.raises(NotFoundError):
            products_service.get_public_product(db, product.id)
        assert products_service.list_for_seller(db, seller) == [product]


class TestCartStock:
    def test_add_within_stock(self, db, buyer, make_product, seller):
        product = make_product(seller, "Clay Pot", 200, stock=3)
        cart_service.add_to_cart(db, buyer, product.id, 2)
        item = cart_service.add_to_cart(db, buyer, product.id, 1)
        assert item.quantity == 3

    def test_add_beyond_stock(self, db, buyer, make_product, seller):
        product = make_product(seller, "Clay Pot", 200, stock=3)
        cart_service.add_to_cart(db, buyer, product.id, 2)
        with pytest.raises(ValidationFailedError, match="Only 3"):
            cart_service.add_to_cart(db, buyer, product.id, 2)
        assert cart_service.list_cart(db, buyer)[0].quantity == 2

    def test_out_of_stock(self, db, buyer, make_product, seller):
        product = make_product(seller, "Clay Pot", 200, stock=0)
        with pytest.raises(ValidationFailedError, match="out of stock"):
            cart_service.add_to_cart(db, buyer, product.id)

    def test_update_beyond_stock(self, db, buyer, make_product, seller):
        product = make_product(seller, "Clay Pot", 200, stock=3)
        item = cart_service.add_to_cart(db, buyer, product.id)
        with pytest.raises(ValidationFailedError):
            cart_service.update_quantity(db, buyer, item.id, 4)
        assert cart_service.update_quantity(db, buyer, item.id, 3).quantity == 3

    def test_unapproved_product_not_cartable(self, db, buyer, seller):
        product = products_service.create_product(db, seller, "Clay Pot", 200, stock=3)
        with pytest.raises(NotFoundError):
            cart_service.add_to_cart(db, buyer, product.id)
