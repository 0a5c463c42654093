# Overview: Append-only activity log; record own actions, query what the caller's role may read.

from __future__ import annotations

import logging

from sqlalchemy import select

from ..extensions import db
from ..models import ActivityLog, User
from ..row_security import acting_as
from ..time_utils import parse_iso_date, parse_iso_datetime
from ..validation import ReferentialError, ValidationError
from .authorization import SKIP_ROW_SECURITY, Entity, Operation, load_caller, read_criteria, require, require_caller
from .transactions import atomic

logger = logging.getLogger(__name__)

# Actions recorded by the API
ACTION_LOGIN = "login"
ACTION_LOGOUT = "logout"
ACTION_PASSWORD_RESET = "password_reset"
ACTION_CREATE_PERMIT = "create_permit"
ACTION_UPDATE_PERMIT = "update_permit"
ACTION_DELETE_PERMIT = "delete_permit"
ACTION_CLOSE_PERMIT = "close_permit"
ACTION_REOPEN_PERMIT = "reopen_permit"
ACTION_EXPORT_PERMITS = "export_permits"
ACTION_CREATE_USER = "create_user"
ACTION_UPDATE_USER = "update_user"
ACTION_DELETE_USER = "delete_user"
ACTION_UPDATE_ROLE_PERMISSIONS = "update_role_permissions"

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def log_activity(
    caller_id: str,
    action: str,
    details: str,
    *,
    user_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> ActivityLog:
    """
    Append an entry attributed to the caller.

    name and username are filled from the caller's record. user_id may be
    given explicitly but must be the caller's own id.

    Raises:
        ValidationError: missing action or details
        ReferentialError: user_id names no user
        AuthorizationError: user_id is someone else
    """
    action = (action or "").strip() if isinstance(action, str) else ""
    if not action:
        raise ValidationError("action is required", field="action")
    if len(action) > 64:
        raise ValidationError("action exceeds max length 64", field="action")
    if details is None or not isinstance(details, str):
        raise ValidationError("details must be a string", field="details")

    with acting_as(caller_id), atomic():
        caller = require_caller(caller_id)
        target_user_id = user_id or caller.id

        if target_user_id != caller.id:
            exists = db.session.execute(
                select(User.id)
                .where(User.id == target_user_id)
                .execution_options(**SKIP_ROW_SECURITY)
            ).first()
            if exists is None:
                raise ReferentialError(f"Unknown user: {target_user_id}", field="user_id")

        entry = ActivityLog(
            user_id=target_user_id,
            name=caller.display_name,
            username=caller.username,
            action=action,
            details=details,
            ip=ip,
            user_agent=(user_agent or "")[:512] or None,
        )
        require(caller, Entity.ACTIVITY_LOG, Operation.CREATE, entry,
                message="Cannot record activity for another user")
        db.session.add(entry)
        db.session.flush()

    return entry


def _date_bound(filters: dict, key: str, end_of_day: bool = False):
    raw = filters.get(key)
    if not raw:
        return None
    try:
        if len(raw.strip()) == 10:
            day = parse_iso_date(raw)
            return parse_iso_datetime(f"{day.isoformat()}T23:59:59.999999" if end_of_day else day.isoformat() + "T00:00:00")
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date", field=key)


def list_activity(caller_id: str, filters: dict | None = None) -> dict:
    """
    Activity entries the caller may read, newest first.

    Filters: action, user_id, search (name, username, details),
    date_from / date_to, page (1-based), page_size.
    Returns {"items": [...], "total": n, "page": p, "page_size": s}.
    """
    filters = filters or {}

    try:
        page = max(int(filters.get("page") or 1), 1)
        page_size = min(max(int(filters.get("page_size") or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    except (TypeError, ValueError):
        raise ValidationError("page and page_size must be integers", field="page")

    with acting_as(caller_id):
        query = db.session.query(ActivityLog)

        if filters.get("action"):
            query = query.filter(ActivityLog.action == filters["action"])
        if filters.get("user_id"):
            query = query.filter(ActivityLog.user_id == filters["user_id"])

        search = (filters.get("search") or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(db.or_(
                ActivityLog.name.ilike(pattern),
                ActivityLog.username.ilike(pattern),
                ActivityLog.details.ilike(pattern),
            ))

        start = _date_bound(filters, "date_from")
        end = _date_bound(filters, "date_to", end_of_day=True)
        if start is not None:
            query = query.filter(ActivityLog.timestamp >= start)
        if end is not None:
            query = query.filter(ActivityLog.timestamp <= end)

        total = query.count()
        items = (
            query.order_by(ActivityLog.timestamp.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

    return {"items": items, "total": total, "page": page, "page_size": page_size}


def list_actions(caller_id: str) -> list[str]:
    """Distinct action names among the entries the caller may read."""
    with acting_as(caller_id):
        caller = load_caller(caller_id)
        stmt = select(ActivityLog.action).distinct().order_by(ActivityLog.action.asc())
        # Column-only select; apply the read predicate directly
        criteria = read_criteria(caller, Entity.ACTIVITY_LOG)
        if criteria is not None:
            stmt = stmt.where(criteria)
        return [action for (action,) in db.session.execute(stmt).all()]
