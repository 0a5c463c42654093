# Overview: Permit store; region-scoped CRUD and the Open/Closed lifecycle.

"""
Permit Service

STATE MACHINE:
    OPEN   --close_permit-->  CLOSED
    CLOSED --reopen_permit--> OPEN

- close: caller has canClosePermits and can read the permit
- reopen: caller has canReopenPermits, can_reopen is true, and the caller
  either has canReopenAnyPermit or is the one who closed it
- a closed permit cannot be edited; reopen is the only way back
- reopen clears closed_by, closed_at and closed_by_name

Every operation runs inside acting_as(caller_id) and one transaction, so
reads are filtered to the caller's visible rows and a failed operation
leaves nothing behind.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date

from sqlalchemy import func, select

from ..extensions import db
from ..models import Permit, REQUEST_TYPES
from ..row_security import acting_as
from ..time_utils import parse_iso_date, utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_materials,
    validate_payload,
)
from .authorization import (
    SKIP_ROW_SECURITY,
    AuthorizationError,
    Caller,
    Entity,
    Operation,
    PermitRow,
    authorize,
    require,
    require_caller,
)
from .region_service import require_region
from .transactions import atomic, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


class ConstraintError(Exception):
    """Illegal lifecycle transition or edit of a closed permit."""
    pass


PERMIT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "permit_number",
        "date",
        "region",
        "location",
        "carrier_name",
        "carrier_id",
        "request_type",
        "vehicle_plate",
        "materials",
        "can_reopen",
    }),
    required_on_create=frozenset({
        "date",
        "region",
        "location",
        "carrier_name",
        "carrier_id",
        "request_type",
        "vehicle_plate",
    }),
)

PERMIT_NUMBER_PREFIX = "MHV"

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

EXPORT_COLUMNS = (
    "permit_number",
    "date",
    "region",
    "location",
    "carrier_name",
    "carrier_id",
    "request_type",
    "vehicle_plate",
    "materials",
    "closed_by_name",
    "closed_at",
    "created_at",
)


def _enforce_rules(patch: dict) -> dict:
    if "request_type" in patch and patch["request_type"] not in REQUEST_TYPES:
        raise ValidationError(f"Invalid request_type: {patch['request_type']}", field="request_type")
    if "region" in patch:
        require_region(patch["region"])
    if "materials" in patch:
        enforce_rules_materials(patch["materials"])
    return patch


def _permit_number_taken(permit_number: str, exclude_id: str | None = None) -> bool:
    # Numbers are unique across every region, visible or not
    stmt = select(Permit.id).where(Permit.permit_number == permit_number)
    if exclude_id is not None:
        stmt = stmt.where(Permit.id != exclude_id)
    return db.session.execute(stmt.execution_options(**SKIP_ROW_SECURITY)).first() is not None


def generate_permit_number(year: int | None = None) -> str:
    """
    Next free number of the form MHV{year}{sequence:06d}.

    The sequence starts after the count of permits already numbered for
    that year.
    """
    year = year or utcnow().year
    prefix = f"{PERMIT_NUMBER_PREFIX}{year}"
    count = db.session.execute(
        select(func.count(Permit.id))
        .where(Permit.permit_number.like(f"{prefix}%"))
        .execution_options(**SKIP_ROW_SECURITY)
    ).scalar() or 0

    sequence = count + 1
    candidate = f"{prefix}{sequence:06d}"
    while _permit_number_taken(candidate):
        sequence += 1
        candidate = f"{prefix}{sequence:06d}"
    return candidate


def _get_visible(permit_id: str, for_update: bool = False) -> Permit | None:
    query = db.session.query(Permit).filter(Permit.id == permit_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


# =============================================================================
# READS
# =============================================================================

def _apply_filters(query, filters: dict | None):
    filters = filters or {}

    region = filters.get("region")
    if region:
        query = query.filter(Permit.region == region)

    request_type = filters.get("request_type")
    if request_type:
        query = query.filter(Permit.request_type == request_type)

    status = filters.get("status")
    if status == STATUS_OPEN:
        query = query.filter(Permit.closed_at.is_(None))
    elif status == STATUS_CLOSED:
        query = query.filter(Permit.closed_at.isnot(None))
    elif status:
        raise ValidationError(f"Invalid status: {status}", field="status")

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(
            Permit.permit_number.ilike(pattern),
            Permit.carrier_name.ilike(pattern),
            Permit.carrier_id.ilike(pattern),
            Permit.vehicle_plate.ilike(pattern),
            Permit.location.ilike(pattern),
        ))

    for key, op in (("date_from", "ge"), ("date_to", "le")):
        raw = filters.get(key)
        if not raw:
            continue
        try:
            bound = raw if isinstance(raw, date) else parse_iso_date(raw)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 date", field=key)
        if bound is None:
            continue
        query = query.filter(Permit.date >= bound if op == "ge" else Permit.date <= bound)

    return query


def list_permits(caller_id: str, filters: dict | None = None) -> list[Permit]:
    """Permits visible to the caller, newest first."""
    with acting_as(caller_id):
        query = _apply_filters(db.session.query(Permit), filters)
        return query.order_by(Permit.created_at.desc(), Permit.permit_number.desc()).all()


def get_permit(caller_id: str, permit_id: str) -> Permit | None:
    """The permit, or None when it does not exist or is out of scope."""
    with acting_as(caller_id):
        return _get_visible(permit_id)


def export_permits_csv(caller_id: str, filters: dict | None = None) -> str:
    """CSV of the visible permits (requires canExportPermits)."""
    with acting_as(caller_id):
        caller = require_caller(caller_id)
        if not caller.can("canExportPermits"):
            logger.warning("Denied permit export for user %s", caller.id)
            raise AuthorizationError("Not authorized to export permits", entity=Entity.PERMIT, operation=Operation.READ)

        permits = _apply_filters(db.session.query(Permit), filters).order_by(Permit.created_at.desc()).all()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for permit in permits:
            row = permit.to_dict()
            row["materials"] = "; ".join(
                item if isinstance(item, str) else ", ".join(f"{k}={v}" for k, v in item.items())
                for item in row["materials"]
            )
            writer.writerow([row[column] if row[column] is not None else "" for column in EXPORT_COLUMNS])
        return buffer.getvalue()


# =============================================================================
# WRITES
# =============================================================================

def create_permit(caller_id: str, payload: dict) -> Permit:
    """
    Create an open permit in the given region.

    permit_number is generated when omitted.
    """
    patch = validate_payload(model=Permit, payload=payload, policy=PERMIT_POLICY, partial=False)
    _enforce_rules(patch)

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        require(caller, Entity.PERMIT, Operation.CREATE, PermitRow(region=patch["region"]))

        permit_number = patch.pop("permit_number", None) or generate_permit_number()
        if _permit_number_taken(permit_number):
            raise ConflictError("permit_number already exists", field="permit_number")

        patch.setdefault("materials", [])
        if patch.get("can_reopen") is None:
            patch["can_reopen"] = True

        permit = Permit(permit_number=permit_number, created_by=caller.id, **patch)
        db.session.add(permit)
        db.session.flush()

    logger.info("Permit %s created by %s in %s", permit_number, caller.username, patch["region"])
    return permit


def update_permit(caller_id: str, permit_id: str, payload: dict) -> Permit:
    """
    Edit an open permit. Partial update semantics.

    Raises:
        NotFoundError: permit does not exist or is out of scope
        ConstraintError: permit is closed
        AuthorizationError: caller may not write the permit's region
            (or the region it would move to)
    """
    patch = validate_payload(model=Permit, payload=payload, policy=PERMIT_POLICY, partial=True)
    _enforce_rules(patch)

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        permit = _get_visible(permit_id, for_update=True)
        if permit is None:
            raise NotFoundError("Permit not found")

        if permit.is_closed:
            raise ConstraintError("Closed permits cannot be edited; reopen it first")

        proposed = PermitRow(region=patch.get("region", permit.region))
        require(caller, Entity.PERMIT, Operation.UPDATE, permit, proposed)

        if "permit_number" in patch:
            if _permit_number_taken(patch["permit_number"], exclude_id=permit.id):
                raise ConflictError("permit_number already exists", field="permit_number")

        for key, value in patch.items():
            setattr(permit, key, value)

    return permit


def delete_permit(caller_id: str, permit_id: str) -> None:
    """Delete a permit in any state (admin only)."""
    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id, for_update=True)
        require(caller, Entity.PERMIT, Operation.DELETE)
        permit = _get_visible(permit_id, for_update=True)
        if permit is None:
            raise NotFoundError("Permit not found")
        permit_number = permit.permit_number
        db.session.delete(permit)

    logger.info("Permit %s deleted by %s", permit_number, caller.username)


def _close(caller: Caller, permit: Permit) -> None:
    if permit.is_closed:
        raise ConstraintError("Permit is already closed")
    require(caller, Entity.PERMIT, Operation.CLOSE, permit, message="Not authorized to close permits")

    permit.closed_by = caller.id
    permit.closed_at = utcnow()
    permit.closed_by_name = caller.display_name


def _reopen(caller: Caller, permit: Permit) -> None:
    if not permit.is_closed:
        raise ConstraintError("Permit is not closed")
    if not permit.can_reopen:
        raise ConstraintError("Permit cannot be reopened")
    if not caller.can("canReopenPermits"):
        raise ConstraintError("Not allowed to reopen permits")
    if not (caller.can("canReopenAnyPermit") or permit.closed_by == caller.id):
        raise ConstraintError("Only the user who closed this permit can reopen it")
    # Any remaining failure is a scope problem
    if not authorize(caller, Entity.PERMIT, Operation.REOPEN, permit):
        raise ConstraintError("Permit cannot be reopened")

    permit.closed_by = None
    permit.closed_at = None
    permit.closed_by_name = None


def _transition(caller_id: str, permit_id: str, step, verb: str) -> Permit:
    def _op():
        with acting_as(caller_id), atomic():
            caller = require_caller(caller_id, for_update=True)
            permit = _get_visible(permit_id, for_update=True)
            if permit is None:
                raise NotFoundError("Permit not found")
            step(caller, permit)
            logger.info("Permit %s %s by %s", permit.permit_number, verb, caller.username)
        return permit

    return run_with_retry(_op)


def close_permit(caller_id: str, permit_id: str) -> Permit:
    """Open -> Closed. Records who closed it and when."""
    return _transition(caller_id, permit_id, _close, "closed")


def reopen_permit(caller_id: str, permit_id: str) -> Permit:
    """Closed -> Open. Clears the closing fields."""
    return _transition(caller_id, permit_id, _reopen, "reopened")
