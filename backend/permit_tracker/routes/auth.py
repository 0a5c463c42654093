# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login issues a bearer token (24h absolute / 2h idle)
- Logout revokes it
- /me re-reads the user and capabilities on every call
- Self-registration is disabled; accounts are created by admins
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, record_activity, require_auth
from ..services import auth_service, role_permission_service, session_service, user_service
from ..services.activity_service import ACTION_LOGIN, ACTION_LOGOUT, ACTION_PASSWORD_RESET
from .errors import HANDLED_ERRORS, json_error


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration is disabled for security.

    Users can only be created by administrators via:
    - POST /api/users (admin only)
    - CLI: flask users create
    """
    return jsonify({
        "error": "Self-registration is disabled. Contact an administrator to create an account."
    }), 403


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, effective capabilities and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        record_activity(ACTION_LOGIN, f"User {user.username} logged in", user_id=user.id)

        return jsonify({
            "user": user.to_dict(),
            "permissions": role_permission_service.effective_capabilities(user),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presented session token."""
    try:
        session_service.revoke_session(bearer_token(), reason="User logout")
        record_activity(ACTION_LOGOUT, "User logged out")
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user record and effective capabilities, read fresh."""
    try:
        user = user_service.get_user(g.current_user_id, g.current_user_id)
        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({
            "user": user.to_dict(),
            "permissions": role_permission_service.effective_capabilities(user),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/reset-password")
def reset_password_route():
    """
    Change own password.

    Request body:
    - username: str
    - oldPassword: str
    - newPassword: str

    All sessions of the user are revoked on success.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        old_password = data.get("oldPassword")
        new_password = data.get("newPassword")

        if not all([username, old_password, new_password]):
            return jsonify({"error": "username, oldPassword and newPassword required"}), 400

        user = auth_service.change_password(username, old_password, new_password)
        record_activity(ACTION_PASSWORD_RESET, f"User {user.username} changed password", user_id=user.id)
        return jsonify({"message": "Password updated"}), 200

    except HANDLED_ERRORS as exc:
        return json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500
