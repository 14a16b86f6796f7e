from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from storefront.errors import NotFound
from storefront.models import Product, utcnow
from storefront.services.stock_ledger import StockLedger

EDITABLE_FIELDS = ("name", "description", "category", "price", "discount", "images", "quantity", "isActive")


class ProductService:
    """Catalog reads for shoppers and catalog edits for admins."""

    def __init__(self, db_session: Session, ledger: Optional[StockLedger] = None) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)
        self.ledger = ledger or StockLedger(db_session)

    def list_products(
        self,
        category: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        include_inactive: bool = False,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product)
        if not include_inactive:
            query = query.filter(Product.isActive.is_(True))
        if category:
            query = query.filter(Product.category == category)
        total = query.count()
        products = (
            query.order_by(desc(Product.created_at), desc(Product.productID))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return products, total

    def list_categories(self) -> List[str]:
        rows = (
            self.db.query(Product.category)
            .filter(Product.isActive.is_(True))
            .distinct()
            .order_by(Product.category)
            .all()
        )
        return [category for (category,) in rows]

    def get_product(self, product_id: int, include_inactive: bool = False) -> Product:
        product = self.db.get(Product, product_id)
        if product is None or (not include_inactive and not product.isActive):
            raise NotFound("Product not found")
        return product

    def create_product(self, data: Dict[str, Any]) -> Product:
        product = Product(
            name=data["name"],
            description=data["description"],
            category=data["category"],
            price=data["price"],
            discount=data.get("discount", 0),
            images=data.get("images", []),
            stock=data.get("stock", 0),
            quantity=data.get("quantity", ""),
            isActive=data.get("isActive", True),
        )
        self.db.add(product)
        self.db.commit()
        self.logger.info("Product %s created with stock %d", product.productID, product.stock)
        return product

    def update_product(self, product_id: int, data: Dict[str, Any]) -> Product:
        """Apply catalog edits; a new ``stock`` value goes through the ledger."""
        product = self.get_product(product_id, include_inactive=True)
        for field in EDITABLE_FIELDS:
            if field in data:
                setattr(product, field, data[field])
        product.updated_at = utcnow()
        try:
            if "stock" in data:
                self.ledger.set_level(product_id, data["stock"], reason="adjustment")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return product

    def delete_product(self, product_id: int) -> None:
        """
        Remove a product from the catalog.

        Carts and orders keep their weak references; carts skip the line when
        totalling and order snapshots are unaffected.
        """
        product = self.get_product(product_id, include_inactive=True)
        self.db.delete(product)
        self.db.commit()
        self.logger.info("Product %s deleted", product_id)
