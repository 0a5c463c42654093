# Overview: Flask API routes for the activity log.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import client_info, require_auth
from ..services import activity_service
from .errors import HANDLED_ERRORS, json_error

activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")

FILTER_KEYS = ("action", "user_id", "search", "date_from", "date_to", "page", "page_size")


@activity_bp.get("")
@require_auth
def list_activity_route():
    """
    Activity entries, newest first.

    Admins, managers and security officers see every entry; other roles get
    an empty list.
    """
    try:
        filters = {key: request.args.get(key) for key in FILTER_KEYS if request.args.get(key)}
        result = activity_service.list_activity(g.current_user_id, filters)
        return jsonify({
            "activities": [entry.to_dict() for entry in result["items"]],
            "total": result["total"],
            "page": result["page"],
            "page_size": result["page_size"],
        }), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to list activity")
        return jsonify({"error": "Internal server error"}), 500


@activity_bp.post("")
@require_auth
def log_activity_route():
    """
    Record an action taken by the current user.

    Request body: {"action": str, "details": str, "user_id": optional, must be own id}
    """
    try:
        data = request.get_json(silent=True) or {}
        entry = activity_service.log_activity(
            g.current_user_id,
            data.get("action"),
            data.get("details"),
            user_id=data.get("user_id"),
            **client_info(),
        )
        return jsonify({"activity": entry.to_dict()}), 201
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to log activity")
        return jsonify({"error": "Internal server error"}), 500


@activity_bp.get("/actions")
@require_auth
def list_actions_route():
    try:
        return jsonify({"actions": activity_service.list_actions(g.current_user_id)}), 200
    except Exception:
        current_app.logger.exception("Failed to list activity actions")
        return jsonify({"error": "Internal server error"}), 500
