from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session, selectinload

from storefront.models import Order, OrderStatus, Product, User
from storefront.observability.business_metrics import (
    compute_ordered_quantities,
    compute_orders_by_status,
    compute_revenue,
)
from storefront.serializers import serialize_product


class AdminService:
    """Read-only reporting views for the admin dashboard."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def list_products(self, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        """
        Every product, active or not, with the units tied up in live orders.

        ``stock`` is already net of those reservations, so ``availableStock``
        mirrors it and ``totalOrderedQuantity`` is for reference.
        """
        query = self.db.query(Product)
        total = query.count()
        products = (
            query.order_by(desc(Product.created_at), desc(Product.productID))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        ordered = compute_ordered_quantities(self.db, [product.productID for product in products])
        rows = [
            serialize_product(
                product,
                availableStock=max(0, product.stock),
                totalOrderedQuantity=ordered.get(product.productID, 0),
            )
            for product in products
        ]
        return rows, total

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order)
        if status is not None:
            query = query.filter(Order.status == status)
        total = query.count()
        orders = (
            query.options(
                selectinload(Order.items),
                selectinload(Order.statusTimeline),
                selectinload(Order.user),
            )
            .order_by(desc(Order.created_at), desc(Order.orderID))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    def list_users(self, page: int = 1, limit: int = 10) -> Tuple[List[User], int]:
        query = self.db.query(User)
        total = query.count()
        users = (
            query.order_by(desc(User.created_at), desc(User.userID))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    def get_stats(self) -> Dict[str, Any]:
        return {
            "totalUsers": self.db.query(User).count(),
            "totalProducts": self.db.query(Product).count(),
            "totalOrders": self.db.query(Order).count(),
            "revenue": float(compute_revenue(self.db)),
            "ordersByStatus": compute_orders_by_status(self.db),
        }
