# Overview: Password hashing and credential checks; login and self-service password change.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

Credential checks run outside any acting context: the caller is not yet
known when a login is attempted. Everything else about users (create,
update, delete, read) goes through user_service under the row rules.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..models import User
from ..row_security import system_context
from ..time_utils import utcnow
from .session_service import revoke_all_user_sessions
from .transactions import atomic

logger = logging.getLogger(__name__)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class InvalidCredentialsError(Exception):
    """Raised when a username/password pair does not match."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Not a bcrypt hash
        return False


def _find_user(identifier: str) -> User | None:
    return db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier)
    ).first()


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login on successful authentication.
    """
    if not identifier or not password:
        return None

    with system_context():
        user = _find_user(identifier.strip())
        if not user or not verify_password(password, user.password):
            logger.warning("Failed login for %r", identifier)
            return None

        user.last_login = utcnow()
        db.session.commit()

    return user


def change_password(username: str, old_password: str, new_password: str) -> User:
    """
    Self-service password change.

    Verifies the old password, enforces strength on the new one and revokes
    every session of the user so other devices must log in again.

    Raises:
        InvalidCredentialsError: username/old password do not match
        PasswordValidationError: new password too weak
    """
    with system_context(), atomic():
        user = _find_user((username or "").strip()) if username else None
        if not user or not verify_password(old_password, user.password):
            raise InvalidCredentialsError("Invalid username or password")

        user.password = hash_password(new_password)
        revoked = revoke_all_user_sessions(user.id, reason="Password changed", commit=False)

    logger.info("Password changed for %s (%d sessions revoked)", user.username, revoked)
    return user
