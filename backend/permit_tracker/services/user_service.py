# Overview: User directory; admin-managed accounts with one role and a region set.

from __future__ import annotations

import logging

from sqlalchemy import select

from ..extensions import db
from ..models import ActivityLog, Permit, SessionToken, User
from ..permissions import CAPABILITY_KEYS, DEFAULT_REGION, DEFAULT_ROLE
from ..row_security import acting_as
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ReferentialError,
    ValidationError,
    enforce_rules_capability_override,
    validate_payload,
)
from .auth_service import hash_password
from .authorization import SKIP_ROW_SECURITY, Entity, Operation, require, require_caller
from .region_service import require_regions
from .role_permission_service import require_role
from .transactions import atomic, lock_for_update

logger = logging.getLogger(__name__)


USER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "username",
        "email",
        "first_name",
        "last_name",
    }),
    required_on_create=frozenset({
        "username",
        "email",
        "first_name",
        "last_name",
    }),
)

# Keys handled outside validate_payload
_SPECIAL_FIELDS = ("password", "region", "role", "permissions")


def _split_payload(payload: dict) -> tuple[dict, dict]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    plain = {k: v for k, v in payload.items() if k not in _SPECIAL_FIELDS}
    special = {k: payload[k] for k in _SPECIAL_FIELDS if k in payload}
    return plain, special


def _check_unique(username: str | None, email: str | None, exclude_id: str | None = None) -> None:
    # Uniqueness spans rows the caller may not read
    for column, value, field in ((User.username, username, "username"), (User.email, email, "email")):
        if value is None:
            continue
        stmt = select(User.id).where(column == value)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        found = db.session.execute(stmt.execution_options(**SKIP_ROW_SECURITY)).first()
        if found is not None:
            raise ConflictError(f"{field} already exists", field=field)


def _get_visible(user_id: str, for_update: bool = False) -> User | None:
    query = db.session.query(User).filter(User.id == user_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def list_users(caller_id: str) -> list[User]:
    """Admins see everyone; anyone else sees only their own record."""
    with acting_as(caller_id):
        return db.session.query(User).order_by(User.created_at.desc()).all()


def get_user(caller_id: str, user_id: str) -> User | None:
    with acting_as(caller_id):
        return _get_visible(user_id)


def create_user(caller_id: str, payload: dict) -> User:
    """
    Create a user account (admin only).

    Required: username, email, password, first_name, last_name.
    Optional: region (list, default ["headquarters"]), role (default
    observer), permissions (partial capability override).
    """
    plain, special = _split_payload(payload)
    patch = validate_payload(model=User, payload=plain, policy=USER_POLICY, partial=False)

    if "password" not in special:
        raise ValidationError("Missing required fields: password", field="password")

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        require(caller, Entity.USER, Operation.CREATE)

        regions = require_regions(special.get("region", [DEFAULT_REGION]))
        role = require_role(special.get("role", DEFAULT_ROLE.value))
        override = enforce_rules_capability_override(special.get("permissions"), CAPABILITY_KEYS)
        _check_unique(patch["username"], patch["email"])

        user = User(
            username=patch["username"],
            email=patch["email"],
            first_name=patch["first_name"],
            last_name=patch["last_name"],
            password=hash_password(special["password"]),
            regions=regions,
            role=role.value,
            permissions=override,
        )
        db.session.add(user)
        db.session.flush()

    logger.info("User %s created by %s (role=%s)", user.username, caller.username, user.role)
    return user


def update_user(caller_id: str, user_id: str, payload: dict) -> User:
    """
    Update a user account (admin only). Partial update semantics.

    Changing role or regions takes effect on the user's next operation;
    sessions are not revoked.
    """
    plain, special = _split_payload(payload)
    patch = validate_payload(model=User, payload=plain, policy=USER_POLICY, partial=True)

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        user = _get_visible(user_id, for_update=True)
        if user is None:
            require(caller, Entity.USER, Operation.UPDATE)
            raise NotFoundError("User not found")
        require(caller, Entity.USER, Operation.UPDATE, user)

        _check_unique(patch.get("username"), patch.get("email"), exclude_id=user.id)

        for key, value in patch.items():
            setattr(user, key, value)

        if "region" in special:
            user.regions = require_regions(special["region"])
        if "role" in special:
            user.role = require_role(special["role"]).value
        if "permissions" in special:
            user.permissions = enforce_rules_capability_override(special["permissions"], CAPABILITY_KEYS)
        if special.get("password"):
            user.password = hash_password(special["password"])

    logger.info("User %s updated by %s", user.id, caller.username)
    return user


def delete_user(caller_id: str, user_id: str) -> None:
    """
    Delete a user account (admin only, never oneself).

    Raises ReferentialError while permits or activity entries still
    reference the user.
    """
    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        user = _get_visible(user_id, for_update=True)
        if user is None:
            require(caller, Entity.USER, Operation.DELETE)
            raise NotFoundError("User not found")
        require(
            caller,
            Entity.USER,
            Operation.DELETE,
            user,
            message="Cannot delete this user" if user.id == caller.id else None,
        )

        # References are counted across all rows, visible or not
        referenced = db.session.execute(
            select(Permit.id)
            .where(db.or_(Permit.created_by == user.id, Permit.closed_by == user.id))
            .limit(1)
            .execution_options(**SKIP_ROW_SECURITY)
        ).first()
        if referenced is None:
            referenced = db.session.execute(
                select(ActivityLog.id)
                .where(ActivityLog.user_id == user.id)
                .limit(1)
                .execution_options(**SKIP_ROW_SECURITY)
            ).first()
        if referenced is not None:
            raise ReferentialError("User is referenced by permits or activity entries", field="id")

        for session in db.session.query(SessionToken).filter_by(user_id=user.id).all():
            db.session.delete(session)
        db.session.delete(user)

    logger.info("User %s deleted by %s", user_id, caller.username)
