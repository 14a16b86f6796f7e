from .stock_ledger import StockLedger
from .cart_service import CartService
from .order_service import OrderService
from .coupon_service import CouponQuote, CouponService
from .notification_service import RealtimeNotifier
from .product_service import ProductService
from .admin_service import AdminService
from .user_service import UserService

__all__ = [
    "StockLedger",
    "CartService",
    "OrderService",
    "CouponQuote",
    "CouponService",
    "RealtimeNotifier",
    # Supporting services
    "ProductService",
    "AdminService",
    "UserService",
]
