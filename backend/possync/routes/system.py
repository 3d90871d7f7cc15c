# backend/possync/routes/system.py
"""
System health endpoint.

Reports connectivity, remote store health and how much offline work is
waiting for the next sync.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from .. import get_engine
from ..extensions import db

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    engine = get_engine()
    online = engine.probe.is_online()
    database = check_database_health() if online else {"status": "skipped"}
    return {
        "status": "ok",
        "online": online,
        "database": database,
        "pending": {
            "products": engine.products.pending_count(),
            "sales": len(engine.checkout.pending_sales()),
        },
    }
