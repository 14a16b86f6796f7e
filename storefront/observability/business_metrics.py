from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.models import Order, OrderItem, OrderStatus, PaymentStatus, money


def compute_orders_by_status(session: Session) -> List[Dict[str, object]]:
    """Order counts grouped by lifecycle status, most frequent first."""
    rows = (
        session.query(Order.status, func.count(Order.orderID))
        .group_by(Order.status)
        .all()
    )
    counts = [
        {"status": status.value if hasattr(status, "value") else status, "count": count}
        for status, count in rows
    ]
    return sorted(counts, key=lambda row: (-row["count"], row["status"]))


def compute_revenue(session: Session) -> Decimal:
    """Sum of totals over orders whose payment has been recorded as paid."""
    total = (
        session.query(func.coalesce(func.sum(Order.totalAmount), 0))
        .filter(Order.paymentStatus == PaymentStatus.PAID)
        .scalar()
    )
    return money(total)


def compute_ordered_quantities(
    session: Session,
    product_ids: Optional[Iterable[int]] = None,
) -> Dict[int, int]:
    """
    Units committed per product across every order that still holds a reservation
    (i.e. everything except cancelled orders).
    """
    query = (
        session.query(OrderItem.productID, func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.orderID == OrderItem.orderID)
        .filter(Order.status != OrderStatus.CANCELLED)
    )
    if product_ids is not None:
        ids = list(product_ids)
        if not ids:
            return {}
        query = query.filter(OrderItem.productID.in_(ids))
    rows = query.group_by(OrderItem.productID).all()
    return {product_id: int(quantity) for product_id, quantity in rows}


__all__ = [
    "compute_orders_by_status",
    "compute_revenue",
    "compute_ordered_quantities",
]
