# Overview: Row-level authorization predicates for every guarded entity.

"""
Authorization Layer

WHY: Every read and write of permits, users, activity entries and role
capability vectors is decided here, from the caller's role and region set
as they are stored at the moment of the operation.

DESIGN PRINCIPLES:
- Fail closed: an unknown caller satisfies no predicate
- No precedence: an operation is allowed iff its predicate is true
- Fresh identity: callers are loaded per operation, never cached on a session
- Reads filter, writes raise: read predicates are also expressed as SQL
  criteria (read_criteria) so hidden rows are indistinguishable from
  nonexistent ones; write predicates raise AuthorizationError via require()

USAGE:
    caller = load_caller(user_id)
    require(caller, Entity.PERMIT, Operation.CREATE, permit)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import false, select

from ..extensions import db
from ..models import ActivityLog, Permit, Region, RolePermission, User
from ..permissions import (
    Role,
    ACTIVITY_READER_ROLES,
    GLOBAL_PERMIT_ROLES,
    PERMIT_WRITER_ROLES,
    parse_role,
)
from ..permissions.helpers import merge_capabilities

logger = logging.getLogger(__name__)

# Execution options that exempt a statement from the session guard. Only a
# statement carrying the private marker object is exempt, so a plain flag
# passed by other code has no effect.
_EXEMPT = object()
SKIP_ROW_SECURITY = {"row_security": _EXEMPT}


def is_exempt(execution_options) -> bool:
    return execution_options.get("row_security") is _EXEMPT


class Entity(str, enum.Enum):
    USER = "user"
    PERMIT = "permit"
    ACTIVITY_LOG = "activity_log"
    ROLE_PERMISSION = "role_permission"
    REGION = "region"


class Operation(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CLOSE = "close"
    REOPEN = "reopen"


ENTITY_MODELS = {
    Entity.USER: User,
    Entity.PERMIT: Permit,
    Entity.ACTIVITY_LOG: ActivityLog,
    Entity.ROLE_PERMISSION: RolePermission,
    Entity.REGION: Region,
}


class AuthorizationError(Exception):
    """Raised when a write predicate is not satisfied."""

    def __init__(self, message: str, entity: Entity | None = None, operation: Operation | None = None):
        super().__init__(message)
        self.entity = entity
        self.operation = operation


@dataclass(frozen=True)
class Caller:
    """Snapshot of the acting user for exactly one operation."""
    id: str
    username: str
    first_name: str
    last_name: str
    role: Role
    regions: frozenset[str]
    capabilities: Mapping[str, bool] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        """Name stamped on the permits this caller closes."""
        return self.full_name or self.username

    def can(self, capability: str) -> bool:
        return bool(self.capabilities.get(capability, False))

    def in_region(self, code: str | None) -> bool:
        return code is not None and code in self.regions


@dataclass(frozen=True)
class PermitRow:
    """The permit columns the predicates depend on."""
    region: str | None
    closed_at: Any = None
    closed_by: str | None = None
    closed_by_name: str | None = None
    can_reopen: bool = True

    @classmethod
    def of(cls, permit) -> "PermitRow":
        if isinstance(permit, PermitRow):
            return permit
        can_reopen = permit.can_reopen
        return cls(
            region=permit.region,
            closed_at=permit.closed_at,
            closed_by=permit.closed_by,
            closed_by_name=permit.closed_by_name,
            can_reopen=True if can_reopen is None else bool(can_reopen),
        )


def load_caller(user_id: str | None, *, for_update: bool = False) -> Caller | None:
    """
    Look up the caller's current role, regions and capabilities.

    Reads column values straight from the database (no identity map), so a
    role or region change committed by another transaction is seen by the
    very next operation. for_update locks the caller's row where the engine
    supports SELECT ... FOR UPDATE.
    """
    if not user_id:
        return None

    stmt = select(
        User.id,
        User.username,
        User.first_name,
        User.last_name,
        User.role,
        User.regions,
        User.permissions,
    ).where(User.id == user_id)
    if for_update:
        stmt = stmt.with_for_update()

    with db.session.no_autoflush:
        row = db.session.execute(stmt.execution_options(**SKIP_ROW_SECURITY)).first()
        if row is None:
            return None

        role = parse_role(row.role)
        if role is None:
            logger.warning("User %s has unknown role %r; treating as unauthenticated", row.id, row.role)
            return None

        stored = db.session.execute(
            select(RolePermission.permissions)
            .where(RolePermission.role == role.value)
            .execution_options(**SKIP_ROW_SECURITY)
        ).scalar()

    return Caller(
        id=row.id,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        role=role,
        regions=frozenset(row.regions or ()),
        capabilities=merge_capabilities(stored or {}, row.permissions),
    )


# =============================================================================
# PREDICATES
# =============================================================================

def _permit_visible(caller: Caller, row: PermitRow) -> bool:
    return caller.role in GLOBAL_PERMIT_ROLES or caller.in_region(row.region)


def _permit_writable(caller: Caller, region: str | None) -> bool:
    if caller.role not in PERMIT_WRITER_ROLES:
        return False
    return caller.role is Role.ADMIN or caller.in_region(region)


def _authorize_permit(caller: Caller, operation: Operation, target, proposed) -> bool:
    if operation is Operation.DELETE:
        return caller.role is Role.ADMIN

    row = PermitRow.of(target)

    if operation is Operation.READ:
        return _permit_visible(caller, row)

    if operation is Operation.CREATE:
        return _permit_writable(caller, row.region)

    if operation is Operation.UPDATE:
        if row.closed_at is not None:
            return False
        if not _permit_writable(caller, row.region):
            return False
        if proposed is not None:
            return _permit_writable(caller, PermitRow.of(proposed).region)
        return True

    if operation is Operation.CLOSE:
        if row.closed_at is not None or not caller.can("canClosePermits"):
            return False
        if proposed is not None:
            # The closer is always the caller
            closing = PermitRow.of(proposed)
            if closing.closed_by != caller.id or closing.closed_by_name != caller.display_name:
                return False
        return _permit_visible(caller, row)

    if operation is Operation.REOPEN:
        if row.closed_at is None or not row.can_reopen:
            return False
        if not caller.can("canReopenPermits"):
            return False
        if not (caller.can("canReopenAnyPermit") or row.closed_by == caller.id):
            return False
        if proposed is not None:
            reopened = PermitRow.of(proposed)
            if reopened.closed_by is not None or reopened.closed_by_name is not None:
                return False
        return _permit_visible(caller, row)

    return False


def _authorize_user(caller: Caller, operation: Operation, target) -> bool:
    if operation is Operation.READ:
        return caller.role is Role.ADMIN or (target is not None and target.id == caller.id)
    if operation in (Operation.CREATE, Operation.UPDATE):
        return caller.role is Role.ADMIN
    if operation is Operation.DELETE:
        if target is None:
            return caller.role is Role.ADMIN
        return caller.role is Role.ADMIN and target.id != caller.id
    return False


def _authorize_activity(caller: Caller, operation: Operation, target) -> bool:
    if operation is Operation.READ:
        return caller.role in ACTIVITY_READER_ROLES
    if operation is Operation.CREATE:
        return target is not None and target.user_id == caller.id
    # Append-only
    return False


def authorize(
    caller: Caller | None,
    entity: Entity,
    operation: Operation,
    target=None,
    proposed=None,
) -> bool:
    """
    Evaluate the predicate for (caller, entity, operation, target).

    target is the stored row (or a PermitRow snapshot of it). proposed is the
    row as it would be written. Permit.update uses it to stop a permit being
    moved into a region the caller cannot write; Permit.close and
    Permit.reopen use it to check the closing fields.
    """
    if caller is None:
        return False

    if entity is Entity.PERMIT:
        return _authorize_permit(caller, operation, target, proposed)
    if entity is Entity.USER:
        return _authorize_user(caller, operation, target)
    if entity is Entity.ACTIVITY_LOG:
        return _authorize_activity(caller, operation, target)
    if entity is Entity.ROLE_PERMISSION:
        if operation is Operation.READ:
            return True
        return caller.role is Role.ADMIN
    if entity is Entity.REGION:
        # Provisioned at deployment; no write path
        return operation is Operation.READ
    return False


def require(
    caller: Caller | None,
    entity: Entity,
    operation: Operation,
    target=None,
    proposed=None,
    message: str | None = None,
) -> None:
    """
    Require the predicate to hold, raise AuthorizationError if not.

    Denials are logged at WARNING; grants are not logged.
    """
    if authorize(caller, entity, operation, target, proposed):
        return

    logger.warning(
        "Denied %s.%s for user %s",
        entity.value,
        operation.value,
        caller.id if caller else "<anonymous>",
    )
    if message is None:
        message = f"Not authorized to {operation.value} {entity.value.replace('_', ' ')}"
    raise AuthorizationError(message, entity=entity, operation=operation)


def require_caller(user_id: str | None, *, for_update: bool = False) -> Caller:
    """Load the caller or raise AuthorizationError when the id does not resolve."""
    caller = load_caller(user_id, for_update=for_update)
    if caller is None:
        logger.warning("Rejected operation for unknown caller %s", user_id)
        raise AuthorizationError("Authentication required")
    return caller


def read_criteria(caller: Caller | None, entity: Entity):
    """
    SQL form of the read predicate.

    Returns None when the caller may read every row, otherwise a boolean
    SQL expression over the entity's model.
    """
    if caller is None:
        return false()

    if entity is Entity.PERMIT:
        if caller.role in GLOBAL_PERMIT_ROLES:
            return None
        if not caller.regions:
            return false()
        return Permit.region.in_(sorted(caller.regions))

    if entity is Entity.USER:
        if caller.role is Role.ADMIN:
            return None
        return User.id == caller.id

    if entity is Entity.ACTIVITY_LOG:
        return None if caller.role in ACTIVITY_READER_ROLES else false()

    if entity in (Entity.ROLE_PERMISSION, Entity.REGION):
        return None

    return false()


def entity_for(instance) -> Entity | None:
    """Map a model instance to its guarded entity (None for unguarded models)."""
    for entity, model in ENTITY_MODELS.items():
        if isinstance(instance, model):
            return entity
    return None
