from __future__ import annotations

from ..extensions import db
from ..permissions import ROLE_NAMES, DEFAULT_REGION, DEFAULT_ROLE
from ..time_utils import to_utc_z, utcnow
from .common import new_uuid


def _default_regions():
    return [DEFAULT_REGION]


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Each user has exactly one role and a non-empty set of region codes.
    The region set is stored as a JSON list in the "region" column.

    WHY: Every permit and activity entry must be attributable. No shared logins.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "role IN ({})".format(", ".join(f"'{name}'" for name in ROLE_NAMES)),
            name="users_role_check",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)

    regions = db.Column("region", db.JSON, nullable=False, default=_default_regions)

    role = db.Column(
        db.String(32),
        db.ForeignKey("role_permissions.role"),
        nullable=False,
        default=DEFAULT_ROLE.value,
        index=True,
    )

    # Optional per-user capability override (partial capability object)
    permissions = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "region": list(self.regions or []),
            "role": self.role,
            "permissions": self.permissions,
            "created_at": to_utc_z(self.created_at),
            "last_login": to_utc_z(self.last_login) if self.last_login else None,
        }


class SessionToken(db.Model):
    """
    Bearer token sessions.

    WHY: Stateless auth tokens with timeout and revocation support.
    Tokens are cryptographically secure random strings (32 bytes = 64 hex chars).

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - Revocable on logout, password change or account deletion
    - Only the user id is carried; role and regions are looked up per operation
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
