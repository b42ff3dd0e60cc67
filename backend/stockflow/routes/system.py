# Overview: Health endpoint for load balancers and deploy checks.

import logging
import time

from flask import Blueprint
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, StockLedgerEntry, Store
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)

logger = logging.getLogger("stockflow.system")


def check_database_health() -> dict:
    """Round-trip the database with a few cheap counts."""
    start_time = time.time()
    try:
        store_count = db.session.query(func.count(Store.id)).scalar()
        product_count = db.session.query(func.count(Product.id)).scalar()
        ledger_count = db.session.query(func.count(StockLedgerEntry.id)).scalar()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "products": product_count,
                "ledger_entries": ledger_count,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503
    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
