# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User  # noqa: F401
from .product import Product  # noqa: F401
from .cart_item import CartItem  # noqa: F401
from .discount import DiscountCode, DiscountCodeUse  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .notification import Notification  # noqa: F401
from .subscriber import Subscriber  # noqa: F401
from .otp import OtpCode  # noqa: F401
