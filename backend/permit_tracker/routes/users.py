# Overview: Flask API routes for user and role-permission management.

"""
User and role capability management.

Admins manage every account and the role capability vectors; other callers
see only their own record and may read the role vectors.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import record_activity, require_auth
from ..services import role_permission_service, user_service
from ..services.activity_service import (
    ACTION_CREATE_USER,
    ACTION_DELETE_USER,
    ACTION_UPDATE_ROLE_PERMISSIONS,
    ACTION_UPDATE_USER,
)
from .errors import HANDLED_ERRORS, json_error

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@users_bp.get("")
@require_auth
def list_users_route():
    try:
        users = user_service.list_users(g.current_user_id)
        return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("")
@require_auth
def create_user_route():
    """
    Create a new user (admin only).

    Request body:
    - username, email, password, first_name, last_name: str (required)
    - region: list[str] (default ["headquarters"])
    - role: str (default "observer")
    - permissions: object (optional capability override)
    """
    try:
        user = user_service.create_user(g.current_user_id, request.get_json(silent=True))
        record_activity(ACTION_CREATE_USER, f"Created user {user.username} ({user.role})")
        return jsonify({"user": user.to_dict()}), 201
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<user_id>")
@require_auth
def get_user_route(user_id: str):
    try:
        user = user_service.get_user(g.current_user_id, user_id)
        if user is None:
            return jsonify({"error": "User not found"}), 404
        return jsonify({"user": user.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<user_id>")
@require_auth
def update_user_route(user_id: str):
    try:
        user = user_service.update_user(g.current_user_id, user_id, request.get_json(silent=True))
        record_activity(ACTION_UPDATE_USER, f"Updated user {user.username}")
        return jsonify({"user": user.to_dict()}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<user_id>")
@require_auth
def delete_user_route(user_id: str):
    try:
        user_service.delete_user(g.current_user_id, user_id)
        record_activity(ACTION_DELETE_USER, f"Deleted user {user_id}")
        return jsonify({"message": "User deleted"}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ROLE CAPABILITIES
# =============================================================================

@users_bp.get("/role-permissions")
@require_auth
def list_role_permissions_route():
    try:
        rows = role_permission_service.list_role_permissions(g.current_user_id)
        return jsonify({"role_permissions": [row.to_dict() for row in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list role permissions")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/role-permissions/<role>")
@require_auth
def update_role_permissions_route(role: str):
    """
    Merge capability flags onto a role's vector (admin only).

    Request body: {"permissions": {"canExportPermits": true, ...}}
    """
    try:
        data = request.get_json(silent=True) or {}
        row = role_permission_service.set_capabilities(g.current_user_id, role, data.get("permissions"))
        record_activity(ACTION_UPDATE_ROLE_PERMISSIONS, f"Updated capabilities for role {row.role}")
        return jsonify({"role_permission": row.to_dict()}), 200
    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update role permissions")
        return jsonify({"error": "Internal server error"}), 500
