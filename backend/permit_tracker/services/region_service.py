# Overview: Region registry; existence checks and deployment-time seeding of the 19 region codes.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Region
from ..permissions import REGION_DEFINITIONS
from ..row_security import acting_as
from ..validation import ValidationError
from .authorization import SKIP_ROW_SECURITY

logger = logging.getLogger(__name__)


def exists(code: str) -> bool:
    """Registry membership; not subject to row filtering."""
    if not isinstance(code, str) or not code:
        return False
    found = (
        db.session.query(Region.id)
        .filter(Region.code == code)
        .execution_options(**SKIP_ROW_SECURITY)
        .first()
    )
    return found is not None


def require_regions(codes, field: str = "region") -> list[str]:
    """
    Validate a non-empty list of region codes.

    Returns the codes de-duplicated in the given order.
    """
    if not isinstance(codes, list) or not codes:
        raise ValidationError(f"{field} must be a non-empty list of region codes", field=field)

    cleaned: list[str] = []
    for code in codes:
        if not isinstance(code, str) or not exists(code):
            raise ValidationError(f"Invalid region: {code}", field=field)
        if code not in cleaned:
            cleaned.append(code)
    return cleaned


def require_region(code, field: str = "region") -> str:
    if not isinstance(code, str) or not exists(code):
        raise ValidationError(f"Invalid region: {code}", field=field)
    return code


def list_regions(caller_id: str) -> list[Region]:
    """All regions, for any authenticated caller; empty otherwise."""
    with acting_as(caller_id):
        return db.session.query(Region).order_by(Region.name_en.asc()).all()


def initialize_regions() -> int:
    """
    Seed the region registry (idempotent).

    Existing codes are left untouched. Returns the number of rows inserted.
    """
    existing = {code for (code,) in db.session.query(Region.code).all()}
    created = 0
    for code, name_en, name_ar in REGION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Region(code=code, name_en=name_en, name_ar=name_ar))
        created += 1
    db.session.commit()
    if created:
        logger.info("Seeded %d regions", created)
    return created
