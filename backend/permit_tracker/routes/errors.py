# Overview: Maps service exceptions onto JSON error responses.

from flask import jsonify
from sqlalchemy.exc import IntegrityError

from ..services.auth_service import InvalidCredentialsError, PasswordValidationError
from ..services.authorization import AuthorizationError
from ..services.permit_service import ConstraintError
from ..validation import ConflictError, NotFoundError, ReferentialError, ValidationError

# Exceptions a route may translate; anything else is a 500
HANDLED_ERRORS = (
    ValidationError,
    ReferentialError,
    NotFoundError,
    AuthorizationError,
    ConstraintError,
    PasswordValidationError,
    InvalidCredentialsError,
    IntegrityError,
)


def json_error(exc: Exception):
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "field": exc.field}), 409
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "field": exc.field}), 400
    if isinstance(exc, PasswordValidationError):
        return jsonify({"error": str(exc), "field": "password"}), 400
    if isinstance(exc, InvalidCredentialsError):
        return jsonify({"error": str(exc)}), 401
    if isinstance(exc, AuthorizationError):
        return jsonify({"error": str(exc)}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ReferentialError):
        return jsonify({"error": str(exc), "field": exc.field}), 409
    if isinstance(exc, ConstraintError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, IntegrityError):
        # Unique or foreign key violation that raced the service checks
        return jsonify({"error": "Conflicts with existing data"}), 409
    return jsonify({"error": "Internal server error"}), 500
