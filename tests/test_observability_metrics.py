import json
import logging

from storefront.observability.business_metrics import (
    compute_ordered_quantities,
    compute_orders_by_status,
    compute_revenue,
)
from storefront.observability.health import check_database_health
from storefront.observability.logging_config import JsonFormatter
from storefront.observability.metrics import (
    get_counter_value,
    get_metrics_snapshot,
    get_recent_events,
    increment_counter,
    observe_latency,
    record_event,
    reset_metrics,
    set_gauge,
)
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService


def test_metrics_snapshot_accumulates_counts():
    reset_metrics()
    increment_counter("test_counter")
    increment_counter("test_counter", amount=2, labels={"route": "/example"})
    set_gauge("test_gauge", 5)
    observe_latency("test_latency", 100, labels={"route": "/example"})
    observe_latency("test_latency", 50, labels={"route": "/example"})

    snapshot = get_metrics_snapshot()
    counters = snapshot["counters"]["test_counter"]
    assert len(counters) == 2
    assert get_counter_value("test_counter") == 3
    assert get_counter_value("test_counter", {"route": "/example"}) == 2

    gauges = snapshot["gauges"]["test_gauge"]
    assert gauges[0]["value"] == 5

    hist = snapshot["histograms"]["test_latency"][0]["stats"]
    assert hist["count"] == 2
    assert hist["max"] == 100


def test_event_ring_buffer_keeps_latest_events():
    for index in range(250):
        record_event("tick", {"index": index})
    record_event("tock", {})

    ticks = get_recent_events("tick")
    assert len(get_recent_events()) == 200
    assert ticks[-1]["payload"]["index"] == 249
    assert len(get_recent_events("tock")) == 1


def test_business_metrics_follow_order_lifecycle(db_session, customer, make_product, principal_for):
    mug = make_product(name="Mug", price="5.00", stock=10)
    bowl = make_product(name="Bowl", price="7.50", stock=10)
    cart = CartService(db_session)
    orders = OrderService(db_session)

    cart.add_item(customer.userID, mug.productID, 2)
    cart.add_item(customer.userID, bowl.productID, 1)
    paid = orders.create_from_cart(principal_for(customer))
    orders.update_status(paid.orderID, payment_status="paid")

    cart.add_item(customer.userID, mug.productID, 3)
    dropped = orders.create_from_cart(principal_for(customer))
    orders.update_status(dropped.orderID, status="cancelled")

    assert compute_ordered_quantities(db_session) == {mug.productID: 2, bowl.productID: 1}
    assert compute_ordered_quantities(db_session, []) == {}
    assert str(compute_revenue(db_session)) == "17.50"
    assert compute_orders_by_status(db_session) == [
        {"status": "cancelled", "count": 1},
        {"status": "placed", "count": 1},
    ]
    assert get_counter_value("orders_created_total") == 2


def test_database_health_reports_up():
    status = check_database_health()
    assert status["status"] == "UP"
    assert status["latency_ms"] >= 0


def test_json_formatter_lifts_storefront_identifiers():
    record = logging.makeLogRecord(
        {
            "name": "storefront.services.order_service",
            "levelname": "INFO",
            "msg": "Order %s placed",
            "args": ("#12345678001",),
            "order_id": 7,
            "order_number": "#12345678001",
            "items": 2,
        }
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Order #12345678001 placed"
    assert payload["order_id"] == 7
    assert payload["order_number"] == "#12345678001"
    assert "product_id" not in payload
    assert payload["extra"] == {"items": 2}
    assert payload["request_id"] is None
