# Overview: Permit statistics over the rows the caller may read; per-role user counts.

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select

from ..extensions import db
from ..models import Permit, User
from ..permissions import Role
from ..row_security import acting_as
from ..time_utils import to_utc_z
from .authorization import SKIP_ROW_SECURITY, AuthorizationError, Entity, Operation, require_caller


def _require_statistics(caller_id: str):
    caller = require_caller(caller_id)
    if not caller.can("canViewStatistics"):
        raise AuthorizationError("Not authorized to view statistics", entity=Entity.PERMIT, operation=Operation.READ)
    return caller


def permit_statistics(caller_id: str) -> dict:
    """
    Counts per (region, request_type): total, active, closed.

    Only permits visible to the caller are counted.
    """
    with acting_as(caller_id):
        _require_statistics(caller_id)
        permits = db.session.query(Permit).all()

    groups: dict[tuple[str, str], dict] = defaultdict(lambda: {"total": 0, "active": 0, "closed": 0})
    for permit in permits:
        bucket = groups[(permit.region, permit.request_type)]
        bucket["total"] += 1
        bucket["closed" if permit.is_closed else "active"] += 1

    breakdown = [
        {"region": region, "request_type": request_type, **counts}
        for (region, request_type), counts in sorted(groups.items())
    ]
    closed = sum(1 for permit in permits if permit.is_closed)
    return {
        "total": len(permits),
        "active": len(permits) - closed,
        "closed": closed,
        "breakdown": breakdown,
    }


def user_statistics(caller_id: str) -> list[dict]:
    """
    Per role: user_count, active_users (logged in at least once), last_activity.

    Counts cover every account, not only the user rows the caller may read;
    only the role and last login columns are loaded.
    """
    with acting_as(caller_id):
        _require_statistics(caller_id)
        users = db.session.execute(
            select(User.role, User.last_login).execution_options(**SKIP_ROW_SECURITY)
        ).all()

    rows = []
    for role in Role:
        members = [user for user in users if user.role == role.value]
        logins = [user.last_login for user in members if user.last_login is not None]
        rows.append({
            "role": role.value,
            "user_count": len(members),
            "active_users": len(logins),
            "last_activity": to_utc_z(max(logins)) if logins else None,
        })
    return rows
