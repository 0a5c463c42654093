from .reference import Region, RolePermission
from .auth import User, SessionToken
from .permits import Permit, REQUEST_TYPES, LIFECYCLE_FIELDS
from .activity import ActivityLog

__all__ = [
    'Region', 'RolePermission',
    'User', 'SessionToken',
    'Permit', 'REQUEST_TYPES', 'LIFECYCLE_FIELDS',
    'ActivityLog',
]
