from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from storefront.errors import InsufficientStock, NotFound, ValidationError
from storefront.models import Product
from storefront.observability import increment_counter, record_event


class StockLedger:
    """
    Single writer of ``Product.stock``.

    Every adjustment is one conditional UPDATE executed by the database, so two
    concurrent checkouts can never both take the last unit. The ledger never
    commits: callers own the transaction, which lets a multi-line checkout roll
    back every reservation it made when a later line fails.
    """

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def reserve(self, product_id: int, quantity: int, reason: str = "order") -> int:
        """
        Take ``quantity`` units out of available stock.

        Raises:
            InsufficientStock: the product holds fewer than ``quantity`` units.
            NotFound: the product row does not exist.

        Returns:
            The stock level after the reservation.
        """
        self._check_quantity(quantity)
        updated = (
            self.db.query(Product)
            .filter(Product.productID == product_id, Product.stock >= quantity)
            .update({Product.stock: Product.stock - quantity}, synchronize_session="fetch")
        )
        product = self._reload(product_id)
        if product is None:
            raise NotFound("Product not found")
        if not updated:
            raise InsufficientStock(product.name, product.stock, quantity, product_id=product_id)

        self._publish(product, old_stock=product.stock + quantity, reason=reason)
        return product.stock

    def release(self, product_id: int, quantity: int, reason: str = "cancellation") -> Optional[int]:
        """
        Return ``quantity`` units to available stock.

        No capacity ceiling is tracked, so repeated releases can push stock past
        the physical count. A product deleted since the reservation is skipped.
        """
        self._check_quantity(quantity)
        updated = (
            self.db.query(Product)
            .filter(Product.productID == product_id)
            .update({Product.stock: Product.stock + quantity}, synchronize_session="fetch")
        )
        if not updated:
            self.logger.warning(
                "Skipping stock release for missing product %s (%d units)",
                product_id,
                quantity,
            )
            return None

        product = self._reload(product_id)
        self._publish(product, old_stock=product.stock - quantity, reason=reason)
        return product.stock

    def set_level(self, product_id: int, stock: int, reason: str = "adjustment") -> int:
        """Overwrite the available stock (admin restock or catalog correction)."""
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValidationError.for_field("stock", "Stock must be a non-negative integer")
        product = self._reload(product_id)
        if product is None:
            raise NotFound("Product not found")

        old_stock = product.stock or 0
        self.db.query(Product).filter(Product.productID == product_id).update(
            {Product.stock: stock}, synchronize_session="fetch"
        )
        product = self._reload(product_id)
        self._publish(product, old_stock=old_stock, reason=reason)
        return product.stock

    def _reload(self, product_id: int) -> Optional[Product]:
        # Push pending attribute edits before refresh() would discard them
        self.db.flush()
        product = self.db.get(Product, product_id)
        if product is not None:
            self.db.refresh(product)
        return product

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError.for_field("quantity", "Quantity must be a positive integer")

    def _publish(self, product: Product, old_stock: int, reason: str) -> None:
        publish_inventory_update_event(
            product_id=product.productID,
            old_stock=old_stock,
            new_stock=product.stock,
            reason=reason,
        )
        self.logger.info(
            "Stock for product %d: %d -> %d (%s)",
            product.productID,
            old_stock,
            product.stock,
            reason,
            extra={"product_id": product.productID},
        )


def publish_inventory_update_event(
    product_id: int,
    old_stock: int,
    new_stock: int,
    reason: str = "order",
) -> None:
    """
    Publish an inventory update event.

    Args:
        product_id: The product that was updated
        old_stock: Previous stock level
        new_stock: New stock level
        reason: Reason for update (order, cancellation, reactivation, adjustment)
    """
    record_event(
        "inventory_updated",
        {
            "product_id": product_id,
            "old_stock": old_stock,
            "new_stock": new_stock,
            "change": new_stock - old_stock,
            "reason": reason,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    increment_counter(
        "inventory_updates_total",
        labels={"reason": reason, "direction": "decrease" if new_stock < old_stock else "increase"},
    )
