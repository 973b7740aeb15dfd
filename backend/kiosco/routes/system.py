# backend/kiosco/routes/system.py
"""
System health endpoint.

Reports database connectivity and which atomic procedures are provisioned,
so a degraded (fallback) deployment is visible from outside.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product
from ..services.gateway import get_gateway
from ..services.procedures import PROCEDURES
from kiosco.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_procedures() -> dict:
    gateway = get_gateway()
    missing = sorted(set(PROCEDURES) - gateway.procedures)
    return {
        "status": "degraded" if missing else "healthy",
        "details": {
            "provisioned": sorted(gateway.procedures),
            "missing": missing,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (running on the sequential fallbacks)
    - 503: database unreachable
    """
    database_health = check_database_health()
    procedure_health = check_procedures()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif procedure_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
            "procedures": procedure_health,
        },
    }, http_status
