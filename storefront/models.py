# storefront/models.py
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

# Use a single, shared Base for all models
from storefront.database import Base

TWOPLACES = Decimal("0.01")


def money(value) -> Decimal:
    """Quantize any numeric value to 2 decimal places, half-up."""
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PLACED = "placed"
    ACCEPTED = "accepted"
    PACKING = "packing"
    SENT_TO_DELIVERY = "sent_to_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class User(Base):
    __tablename__ = 'User'
    userID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    _passwordHash = Column('passwordHash', String(255), nullable=False)
    phone = Column(String(20))
    address = Column(JSON)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    cart = relationship("Cart", back_populates="user", uselist=False)
    orders = relationship("Order", back_populates="user")

    @property
    def passwordHash(self):
        return self._passwordHash

    @passwordHash.setter
    def passwordHash(self, value):
        self._passwordHash = value

    @property
    def is_admin(self) -> bool:
        return (self.role or '').lower() == UserRole.ADMIN.value


class Product(Base):
    __tablename__ = 'Product'
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
    )

    productID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)
    images = Column(JSON, default=list)
    # Units currently available, already net of active order reservations
    stock = Column(Integer, nullable=False, default=0)
    quantity = Column(String(50), default="")
    isActive = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def discounted_price(self) -> Decimal:
        price = Decimal(str(self.price or 0))
        discount = Decimal(str(self.discount or 0))
        if discount > 0:
            return price * (1 - discount / 100)
        return price

    def get_subtotal_for_quantity(self, quantity: int) -> Decimal:
        return self.discounted_price * quantity


class Cart(Base):
    __tablename__ = 'Cart'
    cartID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('User.userID'), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="cart")
    items = relationship(
        "CartItem",
        back_populates="cart",
        order_by="CartItem.position",
        cascade="all, delete-orphan",
    )


class CartItem(Base):
    __tablename__ = 'CartItem'
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_item_quantity_positive"),
        UniqueConstraint("cartID", "productID", name="uq_cart_item_product"),
    )

    cartItemID = Column(Integer, primary_key=True, autoincrement=True)
    cartID = Column(Integer, ForeignKey('Cart.cartID', ondelete="CASCADE"), nullable=False)
    # Weak reference: the product may be deleted or deactivated behind the cart's back
    productID = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship(
        "Product",
        primaryjoin="foreign(CartItem.productID) == Product.productID",
        viewonly=True,
    )


class Order(Base):
    __tablename__ = 'Order'
    orderID = Column(Integer, primary_key=True, autoincrement=True)
    orderNumber = Column(String(20), unique=True, nullable=False)
    userID = Column(Integer, ForeignKey('User.userID'), nullable=False)
    totalAmount = Column(Numeric(12, 2), nullable=False)
    shippingAddress = Column(JSON)
    status = Column(
        SAEnum(OrderStatus, name="order_status", native_enum=False, validate_strings=True,
               values_callable=lambda enum: [member.value for member in enum]),
        default=OrderStatus.PLACED,
        nullable=False,
    )
    paymentStatus = Column(
        SAEnum(PaymentStatus, name="payment_status", native_enum=False, validate_strings=True,
               values_callable=lambda enum: [member.value for member in enum]),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    expectedDeliveryDate = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.orderItemID",
        cascade="all, delete-orphan",
    )
    statusTimeline = relationship(
        "OrderStatusEvent",
        back_populates="order",
        order_by="OrderStatusEvent.eventID",
        cascade="all, delete-orphan",
    )

    def computed_total(self) -> Decimal:
        return sum((item.item_total for item in self.items), Decimal("0.00"))


class OrderItem(Base):
    """Immutable snapshot of a purchased line, captured at order creation."""

    __tablename__ = 'OrderItem'
    orderItemID = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('Order.orderID', ondelete="CASCADE"), nullable=False)
    productID = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="items")
    product = relationship(
        "Product",
        primaryjoin="foreign(OrderItem.productID) == Product.productID",
        viewonly=True,
    )

    @property
    def item_total(self) -> Decimal:
        unit = Decimal(str(self.price)) * (1 - Decimal(str(self.discount or 0)) / 100)
        return money(unit * self.quantity)


class OrderStatusEvent(Base):
    """One append-only entry of an order's status timeline."""

    __tablename__ = 'OrderStatusEvent'
    eventID = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('Order.orderID', ondelete="CASCADE"), nullable=False)
    status = Column(String(32), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    note = Column(Text, nullable=False, default="")

    order = relationship("Order", back_populates="statusTimeline")


class Coupon(Base):
    __tablename__ = 'Coupon'
    couponID = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    discountPercentage = Column(Numeric(5, 2), nullable=False)
    description = Column(String(500), default="")
    isActive = Column(Boolean, nullable=False, default=True, index=True)
    expiryDate = Column(DateTime, nullable=True)
    usageLimit = Column(Integer, nullable=True)
    usedCount = Column(Integer, nullable=False, default=0)
    minPurchaseAmount = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiryDate is None:
            return False
        now = now or utcnow()
        return now > as_utc(self.expiryDate)

    def is_usage_exhausted(self) -> bool:
        return self.usageLimit is not None and (self.usedCount or 0) >= self.usageLimit

    @property
    def is_valid(self) -> bool:
        return bool(self.isActive) and not self.is_expired() and not self.is_usage_exhausted()
