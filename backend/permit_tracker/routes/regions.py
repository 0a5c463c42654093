# Overview: Flask API route for the region registry.

from flask import Blueprint, jsonify, current_app, g

from ..decorators import require_auth
from ..services import region_service

regions_bp = Blueprint("regions", __name__, url_prefix="/api/regions")


@regions_bp.get("")
@require_auth
def list_regions_route():
    try:
        regions = region_service.list_regions(g.current_user_id)
        return jsonify({"regions": [r.to_dict() for r in regions]}), 200
    except Exception:
        current_app.logger.exception("Failed to list regions")
        return jsonify({"error": "Internal server error"}), 500
