# backend/lpgops/routes/system.py
"""
System health endpoint.

Checks the database and the bookkeeping the ledger engine depends on, so
deployments can tell a reachable-but-inconsistent store from a broken one.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import BillSequence, Customer, Cylinder, Transaction
from ..services.inventory_service import audit_cylinder_holdings
from lpgops.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        customer_count = db.session.query(Customer).count()
        transaction_count = db.session.query(Transaction).count()
        cylinder_count = db.session.query(Cylinder).count()
        sequence_count = db.session.query(BillSequence).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "customers": customer_count,
                "transactions": transaction_count,
                "cylinders": cylinder_count,
                "bill_sequences": sequence_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_cylinder_holdings_health() -> dict:
    """Inconsistent holder bookkeeping degrades, but does not fail, the check."""
    start_time = time.time()
    try:
        problems = audit_cylinder_holdings()
        elapsed_ms = (time.time() - start_time) * 1000

        if problems:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"{len(problems)} cylinder(s) with inconsistent holder records",
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Cylinder holdings health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Cylinder audit error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    holdings_health = (
        check_cylinder_holdings_health()
        if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Skipped: database unavailable"}
    )

    all_checks = [database_health, holdings_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "cylinder_holdings": holdings_health,
        }
    }

    return response, http_status
