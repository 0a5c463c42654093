# Overview: The four fixed roles and their seeded capability vectors.

from __future__ import annotations

import enum

from .definitions import CAPABILITY_KEYS


class Role(str, enum.Enum):
    """Closed set of roles. Values are the persisted role names."""
    ADMIN = "admin"
    MANAGER = "manager"
    SECURITY_OFFICER = "security_officer"
    OBSERVER = "observer"


ROLE_NAMES = tuple(role.value for role in Role)

DEFAULT_ROLE = Role.OBSERVER

# Roles that see permits in every region
GLOBAL_PERMIT_ROLES = frozenset({Role.ADMIN, Role.MANAGER})

# Roles allowed to create/update permits (region-scoped unless admin)
PERMIT_WRITER_ROLES = frozenset({Role.ADMIN, Role.MANAGER})

# Roles allowed to read the activity log
ACTIVITY_READER_ROLES = frozenset({Role.ADMIN, Role.MANAGER, Role.SECURITY_OFFICER})

# Capabilities a per-user override may never change
PROTECTED_CAPABILITIES = frozenset({"canManageUsers", "canManagePermissions"})


def _vector(*enabled: str) -> dict[str, bool]:
    return {key: key in enabled for key in CAPABILITY_KEYS}


DEFAULT_ROLE_CAPABILITIES: dict[Role, dict[str, bool]] = {
    Role.ADMIN: _vector(*CAPABILITY_KEYS),
    Role.MANAGER: _vector(
        "canCreatePermits",
        "canEditPermits",
        "canClosePermits",
        "canReopenPermits",
        "canViewPermits",
        "canExportPermits",
        "canViewStatistics",
        "canViewActivityLog",
        "canReopenAnyPermit",
    ),
    Role.SECURITY_OFFICER: _vector(
        "canClosePermits",
        "canReopenPermits",
        "canViewPermits",
        "canViewActivityLog",
    ),
    Role.OBSERVER: _vector("canViewPermits"),
}
