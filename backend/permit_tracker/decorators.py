# Overview: Request decorators for API routes.

from functools import wraps

from flask import request, jsonify, g, current_app

from .row_security import acting_as
from .services import activity_service, session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session and run the view as that user.

    Sets the following Flask g attributes:
    - g.current_user_id: The authenticated user's id
    - g.session_context: The SessionContext object

    The view body runs under acting_as(user_id), so every ORM statement it
    issues is filtered and checked against that user's current role and
    regions. Role and regions are never cached on g.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User no longer exists
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user_id = context.user_id
        g.session_context = context

        with acting_as(context.user_id):
            return f(*args, **kwargs)

    return decorated_function


def client_info() -> dict:
    """IP and user agent for activity entries."""
    return {
        "ip": request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip() or None,
        "user_agent": request.headers.get("User-Agent"),
    }


def record_activity(action: str, details: str, user_id: str | None = None) -> None:
    """
    Append an activity entry for the current user after a successful action.

    The action itself is already committed; a failure here is logged and
    does not change the response.
    """
    actor = user_id or g.get("current_user_id")
    if not actor:
        return
    try:
        activity_service.log_activity(actor, action, details, **client_info())
    except Exception:
        current_app.logger.exception("Failed to record activity %s for %s", action, actor)
