# Overview: Role capability vectors; lookups, admin edits and deployment-time seeding.

"""
Role-Permission Table

WHY: Each of the four roles maps to a fixed 12-key boolean capability
vector. Admins may edit the vectors; the stored object always carries
exactly the 12 keys, in persisted order.

Per-user overrides (User.permissions) sit on top of the role vector but
never change the protected keys (canManageUsers, canManagePermissions).
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import RolePermission, User
from ..permissions import (
    CAPABILITY_KEYS,
    Role,
    default_capabilities,
    merge_capabilities,
    validate_capability_key,
    parse_role,
)
from ..row_security import acting_as
from ..validation import ValidationError
from .authorization import (
    SKIP_ROW_SECURITY,
    Entity,
    Operation,
    require,
    require_caller,
)
from .transactions import atomic, lock_for_update

logger = logging.getLogger(__name__)


def require_role(value, field: str = "role") -> Role:
    role = parse_role(value)
    if role is None:
        raise ValidationError(f"Invalid role: {value}", field=field)
    return role


def _stored_vector(role: Role) -> dict | None:
    return (
        db.session.query(RolePermission.permissions)
        .filter(RolePermission.role == role.value)
        .execution_options(**SKIP_ROW_SECURITY)
        .scalar()
    )


def get_capabilities(role) -> dict[str, bool]:
    """The 12-key vector for a role (all False when the role has no row)."""
    role = require_role(role)
    stored = _stored_vector(role) or {}
    return {key: bool(stored.get(key, False)) for key in CAPABILITY_KEYS}


def effective_capabilities(user: User) -> dict[str, bool]:
    """Role vector overlaid with the user's optional override."""
    role = parse_role(user.role)
    if role is None:
        return {key: False for key in CAPABILITY_KEYS}
    return merge_capabilities(_stored_vector(role) or {}, user.permissions)


def list_role_permissions(caller_id: str) -> list[RolePermission]:
    """Every role vector, for any authenticated caller."""
    with acting_as(caller_id):
        rows = db.session.query(RolePermission).all()
    order = {role.value: index for index, role in enumerate(Role)}
    return sorted(rows, key=lambda row: order.get(row.role, len(order)))


def _validate_vector(capabilities) -> dict[str, bool]:
    if not isinstance(capabilities, dict) or not capabilities:
        raise ValidationError("permissions must be a non-empty object", field="permissions")
    for key, value in capabilities.items():
        if not validate_capability_key(key):
            raise ValidationError(f"Unknown capability: {key}", field="permissions")
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean", field="permissions")
    return capabilities


def set_capabilities(caller_id: str, role, capabilities: dict) -> RolePermission:
    """
    Merge the given keys onto a role's stored vector (admin only).

    Raises:
        ValidationError: unknown role, unknown key or non-boolean value
        AuthorizationError: caller is not an admin
    """
    target_role = require_role(role)
    patch = _validate_vector(capabilities)

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        require(caller, Entity.ROLE_PERMISSION, Operation.UPDATE)

        row = lock_for_update(
            db.session.query(RolePermission).filter(RolePermission.role == target_role.value)
        ).first()

        if row is None:
            require(caller, Entity.ROLE_PERMISSION, Operation.CREATE)
            row = RolePermission(role=target_role.value, permissions={})
            db.session.add(row)

        merged = row.capabilities() if row.permissions else {key: False for key in CAPABILITY_KEYS}
        merged.update(patch)
        # Reassign so the JSON column is flagged dirty
        row.permissions = {key: merged[key] for key in CAPABILITY_KEYS}

    logger.info("Role %s capabilities updated by %s", target_role.value, caller.username)
    return row


def initialize_role_permissions(reset: bool = False) -> int:
    """
    Seed the four role vectors (idempotent).

    reset=True restores the seeded vectors on existing rows as well.
    Returns the number of rows inserted or reset.
    """
    rows = {row.role: row for row in db.session.query(RolePermission).all()}
    touched = 0
    for role in Role:
        vector = default_capabilities(role)
        row = rows.get(role.value)
        if row is None:
            db.session.add(RolePermission(role=role.value, permissions=vector))
            touched += 1
        elif reset and row.capabilities() != vector:
            row.permissions = vector
            touched += 1
    db.session.commit()
    if touched:
        logger.info("Seeded %d role permission rows (reset=%s)", touched, reset)
    return touched
