import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from services import email as email_service
from models.cart_item import CartItem
from models.product import Product, ProductStatus
from models.user import Role, User, VerificationStatus
from security import jwt as jwt_utils
from services.order_lifecycle import CartLine, ShippingDetails


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.ADMIN_EMAILS = ["ops@ecohaat.bd"]
    core_config.settings.OTP_TTL_SECONDS = 300
    core_config.settings.OTP_MAX_ATTEMPTS = 5
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


def _make_user(db, email, username, role, **extra):
    user = User(email=email, username=username, role=role, **extra)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db):
    def _make(email, username=None, role=Role.BUYER, **extra):
        return _make_user(db, email, username or email.split("@")[0], role, **extra)
    return _make


@pytest.fixture
def buyer(db):
    return _make_user(db, "rahim@example.com", "rahim", Role.BUYER, full_name="Rahim Uddin")


@pytest.fixture
def seller(db):
    return _make_user(
        db, "karim@greenshop.bd", "Green Shop", Role.SELLER,
        verification_status=VerificationStatus.VERIFIED, shop_location="Mirpur, Dhaka",
    )


@pytest.fixture
def other_seller(db):
    return _make_user(
        db, "nila@jute.bd", "Jute House", Role.SELLER, verification_status=VerificationStatus.VERIFIED,
    )


@pytest.fixture
def admin(db):
    return _make_user(db, "admin@ecohaat.bd", "admin", Role.ADMIN)


@pytest.fixture
def super_admin(db):
    return _make_user(db, "root@ecohaat.bd", "root", Role.ADMIN, is_super_admin=True)


@pytest.fixture
def make_product(db):
    def _make(seller, name="Bamboo Toothbrush", price=500, stock=10):
        product = Product(
            seller_id=seller.id, name=name, price=price, stock=stock,
            status=ProductStatus.APPROVED, is_active=True,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def product(make_product, seller):
    return make_product(seller)


@pytest.fixture
def shipping():
    return ShippingDetails(
        full_name="Rahim Uddin",
        phone="01711000000",
        division="Dhaka",
        district="Dhaka",
        address="House 12, Road 5, Dhanmondi",
    )


@pytest.fixture
def shipping_payload():
    return {
        "full_name": "Rahim Uddin",
        "phone": "01711000000",
        "division": "Dhaka",
        "district": "Dhaka",
        "address": "House 12, Road 5, Dhanmondi",
    }


@pytest.fixture
def place_order(db, buyer, shipping):
    """Place an order through the service layer; lines are (product, quantity) pairs."""
    from services import order_lifecycle

    def _place(*lines, who=None, discount_code=None, ship=None):
        cart = [CartLine(product.id, quantity) for product, quantity in lines]
        return order_lifecycle.create_order(db, who or buyer, cart, ship or shipping, discount_code=discount_code)
    return _place


@pytest.fixture
def add_to_cart(db):
    def _add(user, product, quantity=1):
        item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        db.add(item)
        db.commit()
        return item
    return _add


def token_for(user) -> str:
    return jwt_utils.create_access_token(str(user.id))


def headers_for(user) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def auth_headers():
    return headers_for
