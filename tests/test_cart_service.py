from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from storefront.database import SessionLocal
from storefront.errors import InsufficientStock, NotFound, ProductUnavailable, ValidationError
from storefront.models import Cart, CartItem
from storefront.services.cart_service import CartService


def test_get_cart_creates_one_empty_cart_per_user(db_session, customer):
    service = CartService(db_session)

    first = service.get_cart(customer.userID)
    second = service.get_cart(customer.userID)

    assert first.cartID == second.cartID
    assert first.items == []
    assert db_session.query(Cart).filter_by(userID=customer.userID).count() == 1


def test_add_merges_quantities_within_stock(db_session, customer, make_product):
    """Stock 5: add 3, adding 3 more fails, adding 2 more fills the line to 5."""
    product = make_product(stock=5)
    service = CartService(db_session)

    service.add_item(customer.userID, product.productID, 3)
    with pytest.raises(InsufficientStock) as excinfo:
        service.add_item(customer.userID, product.productID, 3)
    assert excinfo.value.available == 5
    assert excinfo.value.requested == 6

    cart = service.add_item(customer.userID, product.productID, 2)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 5


def test_add_does_not_touch_stock(db_session, customer, make_product):
    product = make_product(stock=5)
    CartService(db_session).add_item(customer.userID, product.productID, 4)
    db_session.refresh(product)
    assert product.stock == 5


def test_add_appends_new_products_in_order(db_session, customer, make_product):
    apple = make_product(name="Apple", stock=3)
    pear = make_product(name="Pear", stock=3)
    service = CartService(db_session)

    service.add_item(customer.userID, apple.productID, 1)
    cart = service.add_item(customer.userID, pear.productID, 2)

    assert [item.productID for item in cart.items] == [apple.productID, pear.productID]
    assert [item.position for item in cart.items] == [0, 1]


def test_add_rejects_missing_and_inactive_products(db_session, customer, make_product):
    hidden = make_product(is_active=False)
    service = CartService(db_session)

    with pytest.raises(NotFound):
        service.add_item(customer.userID, 987654, 1)
    with pytest.raises(ProductUnavailable):
        service.add_item(customer.userID, hidden.productID, 1)


def test_add_rejects_zero_quantity(db_session, customer, make_product):
    product = make_product(stock=5)
    with pytest.raises(ValidationError):
        CartService(db_session).add_item(customer.userID, product.productID, 0)


def test_set_quantity_checks_live_stock(db_session, customer, make_product):
    product = make_product(stock=4)
    service = CartService(db_session)
    service.add_item(customer.userID, product.productID, 1)

    cart = service.set_quantity(customer.userID, 0, 4)
    assert cart.items[0].quantity == 4

    with pytest.raises(InsufficientStock):
        service.set_quantity(customer.userID, 0, 5)
    with pytest.raises(ValidationError):
        service.set_quantity(customer.userID, 0, 0)
    with pytest.raises(NotFound):
        service.set_quantity(customer.userID, 3, 1)


def test_remove_item_keeps_positions_dense(db_session, customer, make_product):
    products = [make_product(name=f"Item {index}", stock=5) for index in range(3)]
    service = CartService(db_session)
    for product in products:
        service.add_item(customer.userID, product.productID, 1)

    cart = service.remove_item(customer.userID, 1)

    assert [item.productID for item in cart.items] == [products[0].productID, products[2].productID]
    assert [item.position for item in cart.items] == [0, 1]
    with pytest.raises(NotFound):
        service.remove_item(customer.userID, 2)


def test_clear_empties_cart(db_session, customer, make_product):
    product = make_product(stock=5)
    service = CartService(db_session)
    service.add_item(customer.userID, product.productID, 2)

    cart = service.clear(customer.userID)

    assert cart.items == []


def test_total_uses_live_discounted_prices_and_skips_deleted_products(db_session, customer, make_product):
    discounted = make_product(name="Discounted", price="20.00", discount=25, stock=10)
    plain = make_product(name="Plain", price="3.33", stock=10)
    doomed = make_product(name="Doomed", price="99.00", stock=10)
    service = CartService(db_session)
    service.add_item(customer.userID, discounted.productID, 2)
    service.add_item(customer.userID, plain.productID, 3)
    service.add_item(customer.userID, doomed.productID, 1)

    db_session.delete(doomed)
    db_session.commit()
    cart = service.get_cart(customer.userID)

    # 20 * 0.75 * 2 + 3.33 * 3
    assert service.compute_total(cart) == Decimal("39.99")


def _add_concurrently(user_id, product_id, quantities):
    outcomes = []
    outcomes_lock = threading.Lock()
    barrier = threading.Barrier(len(quantities))

    def shopper(quantity):
        session = SessionLocal()
        try:
            barrier.wait()
            try:
                CartService(session).add_item(user_id, product_id, quantity)
                outcome = "added"
            except InsufficientStock:
                outcome = "short"
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=shopper, args=(quantity,)) for quantity in quantities]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def _lines_of(cart_id):
    session = SessionLocal()
    try:
        return [
            (item.productID, item.quantity)
            for item in session.query(CartItem).filter_by(cartID=cart_id).all()
        ]
    finally:
        session.close()


def test_concurrent_adds_of_same_product_merge_into_one_line(db_session, customer, make_product):
    product = make_product(stock=10)
    product_id = product.productID
    user_id = customer.userID
    cart_id = CartService(db_session).get_cart(user_id).cartID
    db_session.close()

    outcomes = _add_concurrently(user_id, product_id, [3, 3])

    assert outcomes == ["added", "added"]
    assert _lines_of(cart_id) == [(product_id, 6)]


def test_concurrent_adds_never_exceed_stock(db_session, customer, make_product):
    product = make_product(stock=5)
    product_id = product.productID
    user_id = customer.userID
    cart_id = CartService(db_session).get_cart(user_id).cartID
    db_session.close()

    outcomes = _add_concurrently(user_id, product_id, [3, 3])

    assert sorted(outcomes) == ["added", "short"]
    assert _lines_of(cart_id) == [(product_id, 3)]
