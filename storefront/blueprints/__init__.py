from .admin import admin_bp
from .auth import auth_bp
from .cart import cart_bp
from .coupons import coupons_bp
from .events import events_bp
from .orders import orders_bp
from .products import products_bp

ALL_BLUEPRINTS = (
    auth_bp,
    products_bp,
    cart_bp,
    orders_bp,
    coupons_bp,
    admin_bp,
    events_bp,
)

__all__ = [
    "ALL_BLUEPRINTS",
    "admin_bp",
    "auth_bp",
    "cart_bp",
    "coupons_bp",
    "events_bp",
    "orders_bp",
    "products_bp",
]
