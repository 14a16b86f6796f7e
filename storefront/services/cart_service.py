from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import Conflict, InsufficientStock, NotFound, ProductUnavailable, ValidationError
from storefront.models import Cart, CartItem, Product, money, utcnow
from storefront.observability import increment_counter


class CartService:
    """
    Per-user shopping cart.

    The cart holds references, never reservations: every mutation checks the
    requested quantity against the product's live stock, but stock is only
    taken when the cart is turned into an order.
    """

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def get_cart(self, user_id: int) -> Cart:
        """Return the user's cart, creating an empty one on first access."""
        cart = self.db.query(Cart).filter(Cart.userID == user_id).first()
        if cart is not None:
            return cart

        cart = Cart(userID=user_id)
        self.db.add(cart)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created it first
            self.db.rollback()
            return self.db.query(Cart).filter(Cart.userID == user_id).one()
        self.logger.info("Created cart for user %s", user_id)
        return cart

    def add_item(self, user_id: int, product_id: int, quantity: int) -> Cart:
        """
        Add ``quantity`` units of a product, merging with an existing line.

        The merged quantity must fit within the product's current stock.
        """
        self._check_quantity(quantity)
        self.get_cart(user_id)

        for attempt in range(2):
            try:
                cart = self._merge_line(user_id, product_id, quantity)
                self.db.commit()
                break
            except IntegrityError:
                # A concurrent add inserted the same product line; merge into it
                self.db.rollback()
                if attempt:
                    raise Conflict("Cart was modified concurrently, please retry")
            except Exception:
                self.db.rollback()
                raise

        increment_counter("cart_items_added_total")
        self.logger.info(
            "User %s added %d x product %s to cart",
            user_id,
            quantity,
            product_id,
        )
        return cart

    def set_quantity(self, user_id: int, line_index: int, quantity: int) -> Cart:
        """Replace the quantity of the line at ``line_index``."""
        self._check_quantity(quantity)
        self.get_cart(user_id)
        try:
            cart = self._lock_cart(user_id)
            item = self._get_line(cart, line_index)

            product = self._get_available_product(item.productID)
            if product.stock < quantity:
                raise InsufficientStock(product.name, product.stock, quantity, product_id=product.productID)

            item.quantity = quantity
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return cart

    def remove_item(self, user_id: int, line_index: int) -> Cart:
        self.get_cart(user_id)
        try:
            cart = self._lock_cart(user_id)
            item = self._get_line(cart, line_index)
            cart.items.remove(item)
            self._renumber(cart)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return cart

    def clear(self, user_id: int) -> Cart:
        cart = self.get_cart(user_id)
        cart.items.clear()
        self.db.commit()
        self.logger.info("Cleared cart for user %s", user_id)
        return cart

    def compute_total(self, cart: Cart) -> Decimal:
        """Live total at current prices; lines whose product is gone are skipped."""
        total = Decimal("0")
        for item in cart.items:
            product = item.product
            if product is None:
                continue
            total += product.get_subtotal_for_quantity(item.quantity)
        return money(total)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lock_cart(self, user_id: int) -> Cart:
        """
        Take the cart row's write lock and reload it.

        Mutations on one cart run one at a time: the UPDATE is the first
        statement of the transaction, so a concurrent writer waits for it to
        finish and then reads the committed lines.
        """
        self.db.flush()
        self.db.query(Cart).filter(Cart.userID == user_id).update(
            {Cart.updated_at: utcnow()},
            synchronize_session=False,
        )
        self.db.expire_all()
        return self.db.query(Cart).filter(Cart.userID == user_id).with_for_update().one()

    def _merge_line(self, user_id: int, product_id: int, quantity: int) -> Cart:
        cart = self._lock_cart(user_id)
        product = self._get_available_product(product_id)

        existing = next((item for item in cart.items if item.productID == product_id), None)
        requested = quantity + (existing.quantity if existing else 0)
        if product.stock < requested:
            raise InsufficientStock(product.name, product.stock, requested, product_id=product_id)

        if existing is not None:
            existing.quantity = requested
        else:
            cart.items.append(CartItem(productID=product_id, quantity=quantity, position=len(cart.items)))
        self.db.flush()
        return cart

    def _get_available_product(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found")
        if not product.isActive:
            raise ProductUnavailable(product.name, product_id)
        return product

    @staticmethod
    def _get_line(cart: Cart, line_index: int) -> CartItem:
        if line_index < 0 or line_index >= len(cart.items):
            raise NotFound("Item not found in cart")
        return cart.items[line_index]

    @staticmethod
    def _renumber(cart: Cart) -> None:
        for position, item in enumerate(cart.items):
            item.position = position

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError.for_field("quantity", "Quantity must be at least 1")
