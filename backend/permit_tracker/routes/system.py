# Overview: System health endpoint.

"""
System health endpoint.

Checks database connectivity and that the reference data (regions and
role capability vectors) has been provisioned.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Region, RolePermission, SessionToken
from ..permissions import REGION_CODES, ROLE_NAMES
from ..row_security import system_context
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and reference data.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        with system_context():
            region_count = db.session.query(Region).count()
            roles = {role for (role,) in db.session.query(RolePermission.role).all()}
            active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000
        missing_roles = sorted(set(ROLE_NAMES) - roles)

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "regions": region_count,
                "roles": len(roles),
                "active_sessions": active_sessions,
            }
        }
        if missing_roles or region_count < len(REGION_CODES):
            result["status"] = "degraded"
            result["warning"] = "Reference data not initialized (run: flask system init)"
        return result
    except Exception:
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
    - 200: healthy or degraded (reference data missing)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }, http_status
