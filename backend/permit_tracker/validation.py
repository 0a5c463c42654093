from __future__ import annotations
from datetime import date, datetime
from permit_tracker.time_utils import parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, JSON
from sqlalchemy.orm import DeclarativeMeta


class ValidationError(ValueError):
    """400-level input problem. field names the offending attribute when known."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(ValidationError):
    """409-level uniqueness conflict (duplicate permit_number, username, email)."""


class ReferentialError(ValueError):
    """Reference to a user that does not exist, or a delete that would orphan one."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(LookupError):
    """Target row does not exist or is outside the caller's visibility."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.column_attrs}


def _coerce_value(key: str, column, value: Any):
    coltype = column.type

    if value is None:
        return None

    # Integers - reject floats, bools and decimal strings
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValidationError(f"{key} must be an integer", field=key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean", field=key)

    # Dates (accept YYYY-MM-DD or ISO-8601 datetime strings)
    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                parsed = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 date", field=key)
            if parsed is None:
                raise ValidationError(f"{key} must be an ISO-8601 date", field=key)
            return parsed
        raise ValidationError(f"{key} must be a date", field=key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string", field=key)
        return str(value).strip()

    # JSON: structure is checked by the entity rules
    if isinstance(coltype, JSON):
        return value

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        column = cols[k].columns[0]

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(k, column, raw)

        # Blank string check for non-nullable text fields
        if isinstance(column.type, (String, Text)) and not column.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(column.type, String) and column.type.length and isinstance(val, str):
            if len(val) > column.type.length:
                raise ValidationError(f"{k} exceeds max length {column.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_materials(materials: Any) -> list:
    """
    materials is an ordered list of descriptors. A descriptor is either a
    plain string or an object whose keys are strings.
    """
    if not isinstance(materials, list):
        raise ValidationError("materials must be a list", field="materials")
    for index, item in enumerate(materials):
        if isinstance(item, str):
            if not item.strip():
                raise ValidationError(f"materials[{index}] cannot be blank", field="materials")
            continue
        if isinstance(item, dict) and all(isinstance(k, str) for k in item):
            continue
        raise ValidationError(f"materials[{index}] must be a string or an object", field="materials")
    return materials


def enforce_rules_capability_override(overrides: Any, known_keys) -> dict | None:
    """Per-user override must be a partial capability object of booleans."""
    if overrides is None:
        return None
    if not isinstance(overrides, dict):
        raise ValidationError("permissions must be an object", field="permissions")
    for key, value in overrides.items():
        if key not in known_keys:
            raise ValidationError(f"Unknown capability: {key}", field="permissions")
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean", field="permissions")
    return dict(overrides)
