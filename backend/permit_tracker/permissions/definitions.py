# Overview: The fixed capability vocabulary shared with the frontend.
# Each capability is defined as: (key, name, description, category)
# Keys are persisted verbatim inside role_permissions.permissions (JSON).

from .categories import CapabilityCategory


PERMIT_CAPABILITIES = [
    (
        "canCreatePermits",
        "Create Permits",
        "Create new permits in an accessible region",
        CapabilityCategory.PERMITS,
    ),
    (
        "canEditPermits",
        "Edit Permits",
        "Edit open permits in an accessible region",
        CapabilityCategory.PERMITS,
    ),
    (
        "canDeletePermits",
        "Delete Permits",
        "Permanently delete permits",
        CapabilityCategory.PERMITS,
    ),
    (
        "canClosePermits",
        "Close Permits",
        "Close an open permit",
        CapabilityCategory.PERMITS,
    ),
    (
        "canReopenPermits",
        "Reopen Permits",
        "Reopen a permit the user closed",
        CapabilityCategory.PERMITS,
    ),
    (
        "canViewPermits",
        "View Permits",
        "View permits in accessible regions",
        CapabilityCategory.PERMITS,
    ),
    (
        "canExportPermits",
        "Export Permits",
        "Export visible permits to CSV",
        CapabilityCategory.PERMITS,
    ),
    (
        "canReopenAnyPermit",
        "Reopen Any Permit",
        "Reopen permits closed by other users",
        CapabilityCategory.PERMITS,
    ),
]

USER_CAPABILITIES = [
    (
        "canManageUsers",
        "Manage Users",
        "Create, edit and delete user accounts",
        CapabilityCategory.USERS,
    ),
]

REPORTING_CAPABILITIES = [
    (
        "canViewStatistics",
        "View Statistics",
        "View permit and user statistics",
        CapabilityCategory.REPORTING,
    ),
    (
        "canViewActivityLog",
        "View Activity Log",
        "View the user activity audit trail",
        CapabilityCategory.REPORTING,
    ),
]

SYSTEM_CAPABILITIES = [
    (
        "canManagePermissions",
        "Manage Permissions",
        "Edit the capability vector of each role",
        CapabilityCategory.SYSTEM,
    ),
]

CAPABILITY_DEFINITIONS = (
    PERMIT_CAPABILITIES
    + USER_CAPABILITIES
    + REPORTING_CAPABILITIES
    + SYSTEM_CAPABILITIES
)

# Persisted key order (matches the seeded JSON objects)
CAPABILITY_KEYS = (
    "canCreatePermits",
    "canEditPermits",
    "canDeletePermits",
    "canClosePermits",
    "canReopenPermits",
    "canViewPermits",
    "canExportPermits",
    "canManageUsers",
    "canViewStatistics",
    "canViewActivityLog",
    "canManagePermissions",
    "canReopenAnyPermit",
)
