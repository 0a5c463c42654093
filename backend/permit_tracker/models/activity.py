from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .common import new_uuid


class ActivityLog(db.Model):
    """
    User activity audit trail.

    name and username are snapshots of the actor at the time of the action.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    A user may only append entries attributed to themselves.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_user_timestamp", "user_id", "timestamp"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(64), nullable=False)

    action = db.Column(db.String(64), nullable=False, index=True)
    details = db.Column(db.Text, nullable=False)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    ip = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "username": self.username,
            "action": self.action,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
            "ip": self.ip,
            "user_agent": self.user_agent,
        }
