# Overview: Flask API route for permit and user statistics.

from flask import Blueprint, jsonify, current_app, g

from ..decorators import require_auth
from ..services import statistics_service
from .errors import HANDLED_ERRORS, json_error

statistics_bp = Blueprint("statistics", __name__, url_prefix="/api/statistics")


@statistics_bp.get("")
@require_auth
def statistics_route():
    """Permit counts per region and request type, user counts per role (canViewStatistics)."""
    try:
        return jsonify({
            "statistics": {
                "permits": statistics_service.permit_statistics(g.current_user_id),
                "users": statistics_service.user_statistics(g.current_user_id),
            }
        }), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to compute statistics")
        return jsonify({"error": "Internal server error"}), 500
