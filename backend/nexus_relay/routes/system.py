# backend/nexus_relay/routes/system.py
"""
System health endpoints.

Used by load balancers and by operators checking a deployment.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Dealer, License, SyncDevice, SyncTransaction
from nexus_relay.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        dealer_count = db.session.query(Dealer).count()
        license_count = db.session.query(License).count()
        device_count = db.session.query(SyncDevice).count()
        transaction_count = db.session.query(SyncTransaction).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "dealers": dealer_count,
                "licenses": license_count,
                "devices": device_count,
                "transactions": transaction_count,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/")
def index():
    return jsonify({"message": "Nexus sync relay is running"}), 200


@system_bp.get("/api/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()

    http_status = 200 if database_health["status"] == "healthy" else 503
    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
