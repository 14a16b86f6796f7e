from __future__ import annotations

import logging
import random
import time
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.auth import Principal
from storefront.errors import (
    Conflict,
    EmptyCart,
    Forbidden,
    NotFound,
    ProductUnavailable,
    ValidationError,
)
from storefront.models import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusEvent,
    PaymentStatus,
    Product,
    User,
    utcnow,
)
from storefront.observability import increment_counter, record_event
from storefront.serializers import serialize_order
from storefront.services.cart_service import CartService
from storefront.services.notification_service import RealtimeNotifier
from storefront.services.stock_ledger import StockLedger

PLACED_NOTE = "Order placed successfully"


def generate_order_number() -> str:
    """``#`` + last 8 digits of the epoch-millisecond clock + 3 random digits."""
    timestamp = str(int(time.time() * 1000))[-8:]
    return f"#{timestamp}{random.randint(0, 999):03d}"


class OrderService:
    """
    Order lifecycle state machine.

    Converts a cart into an order and applies admin status changes, keeping
    product stock consistent with the set of live (non-cancelled) orders:

    - placing an order reserves every line's quantity
    - cancelling an order that was not delivered releases them
    - reactivating a cancelled order reserves them again

    Each operation runs in a single transaction so a failure leaves no partial
    reservation behind. Admin sessions are notified after every commit.
    """

    def __init__(
        self,
        db_session: Session,
        ledger: Optional[StockLedger] = None,
        notifier: Optional[RealtimeNotifier] = None,
    ) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)
        self.ledger = ledger or StockLedger(db_session)
        self.notifier = notifier or RealtimeNotifier()
        self.cart_service = CartService(db_session)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def create_from_cart(self, principal: Principal, shipping_address: Optional[dict] = None) -> Order:
        """
        Turn the principal's cart into a ``placed`` order.

        Every line is checked and reserved in cart order; the first unavailable
        or under-stocked product aborts the whole checkout, rolling back any
        reservation already made and leaving the cart untouched.

        Raises:
            EmptyCart, ProductUnavailable, InsufficientStock, Conflict
        """
        cart = self.cart_service.get_cart(principal.id)
        if not cart.items:
            raise EmptyCart()

        try:
            order_items: List[OrderItem] = []
            for line in cart.items:
                product = line.product
                if product is None or not product.isActive:
                    raise ProductUnavailable(product.name if product else None, line.productID)

                self.ledger.reserve(product.productID, line.quantity, reason="order")
                order_items.append(
                    OrderItem(
                        productID=product.productID,
                        name=product.name,
                        quantity=line.quantity,
                        price=product.price,
                        discount=product.discount or 0,
                    )
                )

            if shipping_address is None:
                user = self.db.get(User, principal.id)
                shipping_address = user.address if user is not None else None

            now = utcnow()
            order = Order(
                orderNumber=generate_order_number(),
                userID=principal.id,
                items=order_items,
                shippingAddress=shipping_address,
                status=OrderStatus.PLACED,
                paymentStatus=PaymentStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            order.totalAmount = order.computed_total()
            order.statusTimeline.append(
                OrderStatusEvent(status=OrderStatus.PLACED.value, timestamp=now, note=PLACED_NOTE)
            )
            self.db.add(order)
            cart.items.clear()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            self.logger.warning("Order insert rejected for user %s: %s", principal.id, exc.orig)
            increment_counter("orders_failed_total", labels={"reason": "conflict"})
            raise Conflict("Order could not be created, please retry") from exc
        except Exception as exc:
            self.db.rollback()
            increment_counter("orders_failed_total", labels={"reason": type(exc).__name__})
            raise

        increment_counter("orders_created_total")
        record_event(
            "order_created",
            {
                "order_id": order.orderID,
                "order_number": order.orderNumber,
                "user_id": principal.id,
                "total": str(order.totalAmount),
            },
        )
        self.logger.info(
            "Order %s placed by user %s",
            order.orderNumber,
            principal.id,
            extra={"order_id": order.orderID, "order_number": order.orderNumber, "items": len(order.items)},
        )
        self._notify_new_order(order)
        return order

    # ------------------------------------------------------------------
    # Admin status transitions
    # ------------------------------------------------------------------
    def update_status(
        self,
        order_id: int,
        status: Optional[OrderStatus | str] = None,
        payment_status: Optional[PaymentStatus | str] = None,
        expected_delivery_date: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Order:
        """
        Apply an admin update to an order.

        Any status may follow any other. Moving to ``cancelled`` releases the
        order's stock unless it was already cancelled or delivered; leaving
        ``cancelled`` reserves it again and fails if any product is short.
        Setting the same status again changes nothing but the payment status
        and delivery date fields.
        """
        new_status = self._coerce(status, OrderStatus, "status")
        new_payment = self._coerce(payment_status, PaymentStatus, "paymentStatus")

        order = (
            self.db.query(Order)
            .filter(Order.orderID == order_id)
            .with_for_update()
            .first()
        )
        if order is None:
            raise NotFound("Order not found")

        previous = order.status
        try:
            if new_status is not None and new_status != previous:
                if new_status == OrderStatus.CANCELLED and previous not in (
                    OrderStatus.CANCELLED,
                    OrderStatus.DELIVERED,
                ):
                    self._release_items(order)
                elif previous == OrderStatus.CANCELLED:
                    self._reserve_items(order)

                order.status = new_status
                order.statusTimeline.append(
                    OrderStatusEvent(
                        status=new_status.value,
                        timestamp=utcnow(),
                        note=note or f"Status changed from {previous.value} to {new_status.value}",
                    )
                )

            if new_payment is not None:
                order.paymentStatus = new_payment

            if expected_delivery_date is not None:
                order.expectedDeliveryDate = expected_delivery_date
                timeline = order.statusTimeline
                if (
                    order.status == OrderStatus.SENT_TO_DELIVERY
                    and timeline
                    and timeline[-1].status == OrderStatus.SENT_TO_DELIVERY.value
                ):
                    timeline[-1].note = (
                        f"Order sent to delivery. Expected delivery: {expected_delivery_date.date().isoformat()}"
                    )

            order.updated_at = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if new_status is not None and new_status != previous:
            increment_counter(
                "order_status_transitions_total",
                labels={"from": previous.value, "to": new_status.value},
            )
            self.logger.info(
                "Order %s moved from %s to %s",
                order.orderNumber,
                previous.value,
                new_status.value,
                extra={"order_id": order.orderID, "order_number": order.orderNumber},
            )
        self._notify_status_update(order)
        return order

    def _release_items(self, order: Order) -> None:
        for item in order.items:
            self.ledger.release(item.productID, item.quantity, reason="cancellation")

    def _reserve_items(self, order: Order) -> None:
        for item in order.items:
            if self.db.get(Product, item.productID) is None:
                self.logger.warning(
                    "Product %s on order %s no longer exists; not reserving",
                    item.productID,
                    order.orderNumber,
                )
                continue
            self.ledger.reserve(item.productID, item.quantity, reason="reactivation")

    @staticmethod
    def _coerce(value, enum_cls, field: str):
        if value is None or isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationError.for_field(field, f"Invalid {field}. Must be one of: {allowed}") from None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_orders(self, user_id: int) -> List[Order]:
        """A user's orders, newest first."""
        return (
            self.db.query(Order)
            .filter(Order.userID == user_id)
            .order_by(desc(Order.created_at), desc(Order.orderID))
            .all()
        )

    def get_order(self, order_id: int, principal: Principal) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.userID != principal.id and not principal.is_admin:
            raise Forbidden("Not authorized to access this order")
        return order

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _notify_new_order(self, order: Order) -> None:
        try:
            self.notifier.emit_new_order(serialize_order(order, include_user=True))
        except Exception:
            self.logger.exception("Failed to publish order:new for %s", order.orderNumber)

    def _notify_status_update(self, order: Order) -> None:
        try:
            self.notifier.emit_order_status_update(serialize_order(order, include_user=True))
        except Exception:
            self.logger.exception("Failed to publish order:status-updated for %s", order.orderNumber)
