# Overview: Session-level row security; applies the authorization predicates to every ORM statement and flush.

"""
Row security guard.

The services call authorize()/require() explicitly, but rows are also
protected when code reaches the session directly:

- Reads: every ORM SELECT issued inside an acting context gets
  with_loader_criteria filters for the guarded models, derived from the
  acting caller as stored at that moment.
- Writes: before_flush evaluates the write predicate for every new, dirty
  and deleted guarded object and raises AuthorizationError before any SQL
  is emitted. ORM INSERT, UPDATE and DELETE statements against guarded
  models are refused outright.

Acting context:
    None       -> guard inactive (CLI, migrations, test fixtures)
    ANONYMOUS  -> every predicate false (start of each HTTP request)
    <user id>  -> that user's rules

NOTE: Session.get() served from the identity map does not emit SQL and so
is not filtered. Services look rows up with queries.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session, with_loader_criteria

from .models import LIFECYCLE_FIELDS, Permit
from .services.authorization import (
    ENTITY_MODELS,
    SKIP_ROW_SECURITY,
    AuthorizationError,
    Entity,
    Operation,
    PermitRow,
    entity_for,
    is_exempt,
    load_caller,
    read_criteria,
    require,
)

logger = logging.getLogger(__name__)

ANONYMOUS = object()

_acting: ContextVar = ContextVar("row_security_acting", default=None)


def current_actor():
    """The acting user id, ANONYMOUS, or None when the guard is inactive."""
    return _acting.get()


def guard_active() -> bool:
    return _acting.get() is not None


@contextmanager
def acting_as(user_id):
    """Run the enclosed block under user_id's rules (falsy id means anonymous)."""
    token = _acting.set(user_id or ANONYMOUS)
    try:
        yield
    finally:
        _acting.reset(token)


def enter_anonymous():
    """Start an anonymous context; returns the token for leave_context()."""
    return _acting.set(ANONYMOUS)


def leave_context(token) -> None:
    _acting.reset(token)


@contextmanager
def system_context():
    """
    Suspend the guard for trusted internal work (login bookkeeping,
    session tokens, seeding). Never entered with caller-supplied input.
    """
    token = _acting.set(None)
    try:
        yield
    finally:
        _acting.reset(token)


def _acting_caller():
    actor = _acting.get()
    if actor is None or actor is ANONYMOUS:
        return None
    return load_caller(actor)


# =============================================================================
# READS
# =============================================================================

def _filter_statement(orm_execute_state):
    if not guard_active():
        return
    if is_exempt(orm_execute_state.execution_options):
        return
    # Refresh of an object the session already holds
    if orm_execute_state.is_column_load:
        return

    if orm_execute_state.is_select:
        caller = _acting_caller()
        options = []
        for entity, model in ENTITY_MODELS.items():
            criteria = read_criteria(caller, entity)
            if criteria is not None:
                options.append(with_loader_criteria(model, criteria, include_aliases=True))
        if options:
            orm_execute_state.statement = orm_execute_state.statement.options(*options)
        return

    if orm_execute_state.is_insert or orm_execute_state.is_update or orm_execute_state.is_delete:
        mapper = orm_execute_state.bind_mapper
        if mapper is not None and mapper.class_ in ENTITY_MODELS.values():
            if orm_execute_state.is_insert:
                kind = "insert"
            else:
                kind = "update" if orm_execute_state.is_update else "delete"
            logger.warning("Refused bulk %s on %s", kind, mapper.class_.__name__)
            raise AuthorizationError("Bulk writes on guarded tables are not permitted")


# =============================================================================
# WRITES
# =============================================================================

def _stored_permit(session: Session, permit_id: str) -> PermitRow | None:
    row = session.execute(
        select(Permit.region, Permit.closed_at, Permit.closed_by, Permit.closed_by_name, Permit.can_reopen)
        .where(Permit.id == permit_id)
        .execution_options(**SKIP_ROW_SECURITY)
    ).first()
    if row is None:
        return None
    return PermitRow(
        region=row.region,
        closed_at=row.closed_at,
        closed_by=row.closed_by,
        closed_by_name=row.closed_by_name,
        can_reopen=True if row.can_reopen is None else bool(row.can_reopen),
    )


def _changed_keys(obj) -> set[str]:
    state = inspect(obj)
    return {attr.key for attr in state.attrs if attr.history.has_changes()}


def permit_operations(stored: PermitRow, proposed: PermitRow, changed: set[str]) -> list[Operation]:
    """
    Classify a permit row change.

    Open -> Closed is a close, Closed -> Open is a reopen; any change to a
    non-lifecycle column is an update (and is checked as one even when it
    rides along with a transition).
    """
    operations = []
    if stored.closed_at is None and proposed.closed_at is not None:
        operations.append(Operation.CLOSE)
    elif stored.closed_at is not None and proposed.closed_at is None:
        operations.append(Operation.REOPEN)
    if changed - LIFECYCLE_FIELDS or (changed and not operations):
        operations.append(Operation.UPDATE)
    return operations


def _check_dirty(session: Session, caller, entity: Entity, obj) -> None:
    changed = _changed_keys(obj)
    if not changed:
        return

    if entity is not Entity.PERMIT:
        require(caller, entity, Operation.UPDATE, obj)
        return

    stored = _stored_permit(session, obj.id)
    if stored is None:
        require(caller, entity, Operation.CREATE, obj)
        return
    proposed = PermitRow.of(obj)
    for operation in permit_operations(stored, proposed, changed):
        require(
            caller,
            entity,
            operation,
            stored,
            None if operation is Operation.UPDATE and proposed.region == stored.region else proposed,
        )


def _check_flush(session: Session, flush_context, instances) -> None:
    if not guard_active():
        return

    caller = _acting_caller()

    for obj in list(session.new):
        entity = entity_for(obj)
        if entity is not None:
            require(caller, entity, Operation.CREATE, obj)

    for obj in list(session.dirty):
        entity = entity_for(obj)
        if entity is not None:
            _check_dirty(session, caller, entity, obj)

    for obj in list(session.deleted):
        entity = entity_for(obj)
        if entity is not None:
            require(caller, entity, Operation.DELETE, obj)


_installed = False


def install_row_security() -> None:
    """Attach the guard to every SQLAlchemy Session (idempotent)."""
    global _installed
    if _installed:
        return
    event.listen(Session, "do_orm_execute", _filter_statement)
    event.listen(Session, "before_flush", _check_flush)
    _installed = True
    logger.debug("Row security guard installed")
