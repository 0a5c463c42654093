# Overview: Flask API routes for permit operations; parses input and returns JSON responses.

from flask import Blueprint, Response, request, jsonify, current_app, g

from ..decorators import record_activity, require_auth
from ..services import permit_service
from ..services.activity_service import (
    ACTION_CLOSE_PERMIT,
    ACTION_CREATE_PERMIT,
    ACTION_DELETE_PERMIT,
    ACTION_EXPORT_PERMITS,
    ACTION_REOPEN_PERMIT,
    ACTION_UPDATE_PERMIT,
)
from ..time_utils import utcnow
from .errors import HANDLED_ERRORS, json_error

permits_bp = Blueprint("permits", __name__, url_prefix="/api/permits")

FILTER_KEYS = ("region", "request_type", "status", "search", "date_from", "date_to")


def _filters() -> dict:
    return {key: request.args.get(key) for key in FILTER_KEYS if request.args.get(key)}


@permits_bp.get("")
@require_auth
def list_permits_route():
    """
    List permits visible to the caller.

    Query params: region, request_type, status (open|closed), search,
    date_from, date_to (YYYY-MM-DD).
    """
    try:
        permits = permit_service.list_permits(g.current_user_id, _filters())
        return jsonify({"permits": [p.to_dict() for p in permits], "count": len(permits)}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to list permits")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.post("")
@require_auth
def create_permit_route():
    try:
        payload = request.get_json(silent=True)
        permit = permit_service.create_permit(g.current_user_id, payload)
        record_activity(ACTION_CREATE_PERMIT, f"Created permit {permit.permit_number} in {permit.region}")
        return jsonify({"permit": permit.to_dict()}), 201
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to create permit")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.get("/export")
@require_auth
def export_permits_route():
    """CSV export of the visible permits (canExportPermits)."""
    try:
        body = permit_service.export_permits_csv(g.current_user_id, _filters())
        record_activity(ACTION_EXPORT_PERMITS, "Exported permits to CSV")
        filename = f"permits-{utcnow().strftime('%Y%m%d')}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to export permits")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.get("/<permit_id>")
@require_auth
def get_permit_route(permit_id: str):
    try:
        permit = permit_service.get_permit(g.current_user_id, permit_id)
        if permit is None:
            return jsonify({"error": "Permit not found"}), 404
        return jsonify({"permit": permit.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load permit")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.put("/<permit_id>")
@require_auth
def update_permit_route(permit_id: str):
    try:
        payload = request.get_json(silent=True)
        permit = permit_service.update_permit(g.current_user_id, permit_id, payload)
        record_activity(ACTION_UPDATE_PERMIT, f"Updated permit {permit.permit_number}")
        return jsonify({"permit": permit.to_dict()}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update permit")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.delete("/<permit_id>")
@require_auth
def delete_permit_route(permit_id: str):
    try:
        permit_service.delete_permit(g.current_user_id, permit_id)
        record_activity(ACTION_DELETE_PERMIT, f"Deleted permit {permit_id}")
        return jsonify({"message": "Permit deleted"}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to delete permit")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.patch("/<permit_id>/close")
@require_auth
def close_permit_route(permit_id: str):
    try:
        permit = permit_service.close_permit(g.current_user_id, permit_id)
        record_activity(ACTION_CLOSE_PERMIT, f"Closed permit {permit.permit_number}")
        return jsonify({"permit": permit.to_dict()}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to close permit")
        return jsonify({"error": "Internal server error"}), 500


@permits_bp.patch("/<permit_id>/reopen")
@require_auth
def reopen_permit_route(permit_id: str):
    try:
        permit = permit_service.reopen_permit(g.current_user_id, permit_id)
        record_activity(ACTION_REOPEN_PERMIT, f"Reopened permit {permit.permit_number}")
        return jsonify({"permit": permit.to_dict()}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to reopen permit")
        return jsonify({"error": "Internal server error"}), 500
