"""Storefront observability: JSON request logging, in-process metrics, order reporting and health."""

from .logging_config import CONTEXT_FIELDS, JsonFormatter, configure_logging, ensure_request_id
from .metrics import (
    get_counter_value,
    get_metrics_snapshot,
    get_recent_events,
    increment_counter,
    observe_latency,
    record_event,
    reset_metrics,
    set_gauge,
)
from .business_metrics import compute_ordered_quantities, compute_orders_by_status, compute_revenue
from .health import check_database_health

__all__ = [
    "CONTEXT_FIELDS",
    "JsonFormatter",
    "configure_logging",
    "ensure_request_id",
    "get_counter_value",
    "get_metrics_snapshot",
    "get_recent_events",
    "increment_counter",
    "observe_latency",
    "record_event",
    "reset_metrics",
    "set_gauge",
    "compute_ordered_quantities",
    "compute_orders_by_status",
    "compute_revenue",
    "check_database_health",
]
