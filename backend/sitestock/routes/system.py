# backend/sitestock/routes/system.py
"""
System health endpoint.

Reports database connectivity and a few ledger counters for deployment debugging.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryBalance, Store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        store_count = db.session.query(Store).filter(Store.deleted_at.is_(None)).count()
        balance_count = db.session.query(InventoryBalance).count()
        negative_count = db.session.query(InventoryBalance).filter(InventoryBalance.quantity < 0).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if negative_count == 0 else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "balances": balance_count,
                "negative_balances": negative_count,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()

    if database_health["status"] == "unhealthy":
        http_status = 503
    else:
        http_status = 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
