# Overview: Utility functions for capability and role lookups.

from __future__ import annotations

from .definitions import CAPABILITY_DEFINITIONS, CAPABILITY_KEYS
from .roles import Role, DEFAULT_ROLE_CAPABILITIES, PROTECTED_CAPABILITIES


def get_capability_definition(key):
    """Get full definition for a capability key."""
    for cap in CAPABILITY_DEFINITIONS:
        if cap[0] == key:
            return {
                "key": cap[0],
                "name": cap[1],
                "description": cap[2],
                "category": cap[3],
            }
    return None


def validate_capability_key(key):
    """Check if a capability key is valid."""
    return key in CAPABILITY_KEYS


def parse_role(value) -> Role | None:
    """Return the Role for a persisted role name, or None if unknown."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def default_capabilities(role: Role) -> dict[str, bool]:
    """Fresh copy of the seeded vector for a role."""
    return dict(DEFAULT_ROLE_CAPABILITIES[role])


def merge_capabilities(role_vector, override=None) -> dict[str, bool]:
    """
    Effective capabilities: the role vector with the per-user override on top.

    Keys missing from the stored vector read as False. Protected keys always
    come from the role vector.
    """
    merged = {key: bool((role_vector or {}).get(key, False)) for key in CAPABILITY_KEYS}
    for key, value in (override or {}).items():
        if key in merged and key not in PROTECTED_CAPABILITIES:
            merged[key] = bool(value)
    return merged
