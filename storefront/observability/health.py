from __future__ import annotations

import time
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.database import engine, init_database


def check_database_health() -> Dict[str, Any]:
    """Attempt a lightweight DB query to ensure connectivity."""
    started = time.perf_counter()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return {"status": "DOWN", "detail": exc.__class__.__name__}
    latency_ms = round((time.perf_counter() - started) * 1000, 2)
    # A reachable database that missed startup still needs its schema
    schema_ready = init_database()
    return {"status": "UP" if schema_ready else "DEGRADED", "latency_ms": latency_ms}
