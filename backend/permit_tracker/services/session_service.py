# Overview: Bearer session tokens; issue, validate, revoke.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

A session resolves to a user id and nothing else. Role and regions are
looked up per operation by the authorization layer, so a role change takes
effect on the very next request without re-login.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout or security events
- Tracks client IP and user agent for security monitoring
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select

from ..extensions import db
from ..models import SessionToken, User
from ..row_security import system_context
from ..time_utils import utcnow


# Configuration constants
SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum session length
SESSION_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout


@dataclass
class SessionContext:
    """Result of validate_session: who is calling, and through which session."""
    user_id: str
    session_id: str


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _user_exists(user_id: str) -> bool:
    return db.session.execute(select(User.id).where(User.id == user_id)).first() is not None


def _revoke(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def create_session(
    user_id: str,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.

    Raises ValueError if the user does not exist.
    """
    with system_context():
        if not _user_exists(user_id):
            raise ValueError("User not found")

        plaintext_token = generate_token()
        now = utcnow()

        session = SessionToken(
            user_id=user_id,
            token_hash=hash_token(plaintext_token),
            created_at=now,
            last_used_at=now,
            expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
            user_agent=(user_agent or "")[:512] or None,
            ip_address=ip_address,
            is_revoked=False,
        )

        db.session.add(session)
        db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - The user no longer exists

    Updates last_used_at on successful validation (activity tracking).
    """
    if not token:
        return None

    token_hash = hash_token(token)
    now = utcnow()

    with system_context():
        session = db.session.query(SessionToken).filter_by(
            token_hash=token_hash,
            is_revoked=False
        ).first()

        if not session:
            return None

        # Check absolute timeout
        if session.expires_at < now:
            return None

        # Check idle timeout
        if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
            _revoke(session, "Idle timeout", now)
            db.session.commit()
            return None

        if not _user_exists(session.user_id):
            _revoke(session, "User deleted", now)
            db.session.commit()
            return None

        session.last_used_at = now
        db.session.commit()

        return SessionContext(user_id=session.user_id, session_id=session.id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    with system_context():
        session = db.session.query(SessionToken).filter_by(
            token_hash=hash_token(token),
            is_revoked=False
        ).first()

        if not session:
            return False

        _revoke(session, reason)
        db.session.commit()
    return True


def revoke_all_user_sessions(user_id: str, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke all active sessions for a user.

    Returns count of sessions revoked. commit=False leaves the change in the
    caller's transaction.
    """
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False
    ).all()

    for session in sessions:
        _revoke(session, reason, now)

    if commit:
        db.session.commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """
    Delete expired and revoked sessions older than 30 days.

    Returns count of sessions deleted.
    """
    cutoff = utcnow() - timedelta(days=30)

    with system_context():
        deleted = db.session.query(SessionToken).filter(
            db.or_(
                SessionToken.expires_at < utcnow(),
                SessionToken.is_revoked.is_(True)
            ),
            SessionToken.created_at < cutoff
        ).delete(synchronize_session=False)

        db.session.commit()
    return deleted
