from __future__ import annotations

from ..extensions import db
from ..permissions import CAPABILITY_KEYS
from ..time_utils import to_utc_z, utcnow
from .common import new_uuid


class Region(db.Model):
    """
    Geographic scoping codes.

    IMMUTABLE: Provisioned at deployment time (flask system init).
    Users and permits reference regions by code.
    """
    __tablename__ = "regions"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name_en = db.Column(db.String(128), nullable=False)
    name_ar = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name_en": self.name_en,
            "name_ar": self.name_ar,
            "created_at": to_utc_z(self.created_at),
        }


class RolePermission(db.Model):
    """
    Capability vector per role.

    One row per role (admin, manager, security_officer, observer).
    permissions is a 12-key boolean object; the keys are shared with the
    frontend and must not be renamed.
    """
    __tablename__ = "role_permissions"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    role = db.Column(db.String(32), nullable=False, unique=True, index=True)
    permissions = db.Column(db.JSON, nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def capabilities(self) -> dict[str, bool]:
        stored = self.permissions or {}
        return {key: bool(stored.get(key, False)) for key in CAPABILITY_KEYS}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "permissions": self.capabilities(),
            "updated_at": to_utc_z(self.updated_at),
        }
