from __future__ import annotations

import threading

import pytest

from storefront.database import SessionLocal
from storefront.errors import InsufficientStock, NotFound, ValidationError
from storefront.models import Product
from storefront.observability.metrics import get_counter_value, get_recent_events
from storefront.services.stock_ledger import StockLedger


def _stock_of(product_id: int) -> int:
    session = SessionLocal()
    try:
        return session.get(Product, product_id).stock
    finally:
        session.close()


def test_reserve_decrements_stock_and_publishes_event(db_session, make_product):
    product = make_product(stock=5)
    ledger = StockLedger(db_session)

    remaining = ledger.reserve(product.productID, 3)
    db_session.commit()

    assert remaining == 2
    assert _stock_of(product.productID) == 2
    events = get_recent_events("inventory_updated")
    assert events[-1]["payload"]["old_stock"] == 5
    assert events[-1]["payload"]["new_stock"] == 2
    assert get_counter_value("inventory_updates_total", {"reason": "order", "direction": "decrease"}) == 1


def test_reserve_more_than_available_fails_and_leaves_stock(db_session, make_product):
    product = make_product(name="Rice", stock=2)
    ledger = StockLedger(db_session)

    with pytest.raises(InsufficientStock) as excinfo:
        ledger.reserve(product.productID, 3)
    db_session.rollback()

    assert excinfo.value.available == 2
    assert excinfo.value.requested == 3
    assert "Insufficient stock for Rice" in excinfo.value.message
    assert _stock_of(product.productID) == 2


def test_reserve_exact_stock_reaches_zero(db_session, make_product):
    product = make_product(stock=4)
    assert StockLedger(db_session).reserve(product.productID, 4) == 0
    db_session.commit()
    assert _stock_of(product.productID) == 0


def test_reserve_unknown_product_raises_not_found(db_session):
    with pytest.raises(NotFound):
        StockLedger(db_session).reserve(999999, 1)


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "2"])
def test_reserve_rejects_non_positive_or_non_integer_quantity(db_session, make_product, quantity):
    product = make_product(stock=5)
    with pytest.raises(ValidationError):
        StockLedger(db_session).reserve(product.productID, quantity)
    assert _stock_of(product.productID) == 5


def test_release_restores_stock_without_ceiling(db_session, make_product):
    product = make_product(stock=1)
    ledger = StockLedger(db_session)

    assert ledger.release(product.productID, 4) == 5
    db_session.commit()
    assert _stock_of(product.productID) == 5


def test_release_for_missing_product_is_skipped(db_session):
    assert StockLedger(db_session).release(424242, 2) is None


def test_set_level_overwrites_stock_and_rejects_negative(db_session, make_product):
    product = make_product(stock=3)
    ledger = StockLedger(db_session)

    assert ledger.set_level(product.productID, 12) == 12
    db_session.commit()
    assert _stock_of(product.productID) == 12

    with pytest.raises(ValidationError):
        ledger.set_level(product.productID, -1)


def test_rollback_discards_reservations(db_session, make_product):
    first = make_product(name="First", stock=5)
    second = make_product(name="Second", stock=1)
    ledger = StockLedger(db_session)

    ledger.reserve(first.productID, 2)
    with pytest.raises(InsufficientStock):
        ledger.reserve(second.productID, 2)
    db_session.rollback()

    assert _stock_of(first.productID) == 5
    assert _stock_of(second.productID) == 1


def _run_concurrently(workers):
    barrier = threading.Barrier(len(workers))
    threads = [threading.Thread(target=worker, args=(barrier,)) for worker in workers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)


def test_concurrent_reservations_never_oversell(make_product, db_session):
    product = make_product(stock=5)
    product_id = product.productID
    db_session.close()

    outcomes = []
    outcomes_lock = threading.Lock()

    def buyer(barrier):
        session = SessionLocal()
        try:
            barrier.wait()
            try:
                StockLedger(session).reserve(product_id, 1)
                session.commit()
                outcome = "reserved"
            except InsufficientStock:
                session.rollback()
                outcome = "short"
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(outcome)

    _run_concurrently([buyer] * 10)

    assert len(outcomes) == 10
    assert outcomes.count("reserved") == 5
    assert outcomes.count("short") == 5
    assert _stock_of(product_id) == 0


def test_concurrent_reservations_racing_a_restock_stay_non_negative(make_product, db_session):
    product = make_product(stock=2)
    product_id = product.productID
    db_session.close()

    reserved = []
    reserved_lock = threading.Lock()

    def buyer(barrier):
        session = SessionLocal()
        try:
            barrier.wait()
            try:
                StockLedger(session).reserve(product_id, 2)
                session.commit()
                with reserved_lock:
                    reserved.append(2)
            except InsufficientStock:
                session.rollback()
        finally:
            session.close()

    def restock(barrier):
        session = SessionLocal()
        try:
            barrier.wait()
            StockLedger(session).set_level(product_id, 1)
            session.commit()
        finally:
            session.close()

    _run_concurrently([buyer, buyer, restock])

    # The restock is an absolute overwrite, and 1 unit never fits a 2-unit order
    assert _stock_of(product_id) == 1
    assert len(reserved) <= 1
