# backend/cafepos/routes/system.py
"""
System health endpoint.

Reports the primary store and, when the primary is relational, whether the
document replica is reachable. Replica trouble never makes the service
unhealthy: billing keeps working offline.
"""

import time
from flask import Blueprint, current_app

from ..storage import get_storage
from ..validation import ConflictError, TransientStorageError

system_bp = Blueprint("system", __name__)


def check_primary_health() -> dict:
    start_time = time.time()
    store = get_storage()
    try:
        product_count = store.count("products")
        return {
            "status": "healthy",
            "backend": store.kind,
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {"products": product_count},
        }
    except Exception:
        current_app.logger.exception("Primary store health check failed")
        return {
            "status": "unhealthy",
            "backend": store.kind,
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Storage error",
        }


def check_replica_health() -> dict | None:
    replica = current_app.extensions["cafepos"].get("replica")
    if replica is None:
        return None
    start_time = time.time()
    try:
        replica.ping()
        status = "reachable"
    except (TransientStorageError, ConflictError) as e:
        current_app.logger.info("Replica unreachable: %s", e)
        status = "unreachable"
    return {"status": status, "latency_ms": round((time.time() - start_time) * 1000, 2)}


@system_bp.get("/health")
def health():
    primary = check_primary_health()
    body = {
        "status": primary["status"],
        "primary": primary,
        "replica": check_replica_health(),
    }
    return body, 200 if primary["status"] == "healthy" else 503
