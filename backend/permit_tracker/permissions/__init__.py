# Overview: Capability, role and region vocabulary package.
# Re-exports all public APIs.

from .categories import CapabilityCategory
from .definitions import (
    CAPABILITY_DEFINITIONS,
    CAPABILITY_KEYS,
    PERMIT_CAPABILITIES,
    USER_CAPABILITIES,
    REPORTING_CAPABILITIES,
    SYSTEM_CAPABILITIES,
)
from .roles import (
    Role,
    ROLE_NAMES,
    DEFAULT_ROLE,
    DEFAULT_ROLE_CAPABILITIES,
    GLOBAL_PERMIT_ROLES,
    PERMIT_WRITER_ROLES,
    ACTIVITY_READER_ROLES,
    PROTECTED_CAPABILITIES,
)
from .regions import DEFAULT_REGION, REGION_DEFINITIONS, REGION_CODES
from .helpers import (
    get_capability_definition,
    validate_capability_key,
    parse_role,
    default_capabilities,
    merge_capabilities,
)

__all__ = [
    "CapabilityCategory",
    "CAPABILITY_DEFINITIONS",
    "CAPABILITY_KEYS",
    "PERMIT_CAPABILITIES",
    "USER_CAPABILITIES",
    "REPORTING_CAPABILITIES",
    "SYSTEM_CAPABILITIES",
    "Role",
    "ROLE_NAMES",
    "DEFAULT_ROLE",
    "DEFAULT_ROLE_CAPABILITIES",
    "GLOBAL_PERMIT_ROLES",
    "PERMIT_WRITER_ROLES",
    "ACTIVITY_READER_ROLES",
    "PROTECTED_CAPABILITIES",
    "DEFAULT_REGION",
    "REGION_DEFINITIONS",
    "REGION_CODES",
    "get_capability_definition",
    "validate_capability_key",
    "parse_role",
    "default_capabilities",
    "merge_capabilities",
]
