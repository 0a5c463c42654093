from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .common import new_uuid


REQUEST_TYPES = (
    "material_entrance",
    "material_exit",
    "heavy_vehicle_entrance_exit",
    "heavy_vehicle_entrance",
    "heavy_vehicle_exit",
)

# Columns written by the close/reopen transitions
LIFECYCLE_FIELDS = frozenset({"closed_by", "closed_at", "closed_by_name"})


class Permit(db.Model):
    """
    Heavy material / vehicle movement permit.

    STATE MACHINE:
        OPEN   (closed_at IS NULL)
        CLOSED (closed_at IS NOT NULL)

    Closed permits are immutable except through the reopen transition,
    which is allowed only while can_reopen is true.
    """
    __tablename__ = "permits"
    __table_args__ = (
        db.CheckConstraint(
            "request_type IN ({})".format(", ".join(f"'{t}'" for t in REQUEST_TYPES)),
            name="permits_request_type_check",
        ),
        db.Index("ix_permits_region_created", "region", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    permit_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    date = db.Column(db.Date, nullable=False, index=True)
    region = db.Column(db.String(64), db.ForeignKey("regions.code"), nullable=False, index=True)
    location = db.Column(db.String(255), nullable=False)

    carrier_name = db.Column(db.String(255), nullable=False)
    carrier_id = db.Column(db.String(64), nullable=False)
    request_type = db.Column(db.String(32), nullable=False)
    vehicle_plate = db.Column(db.String(32), nullable=False)

    # Ordered list of material descriptors
    materials = db.Column(db.JSON, nullable=False, default=list)

    closed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_name = db.Column(db.String(255), nullable=True)
    can_reopen = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "permit_number": self.permit_number,
            "date": self.date.isoformat() if self.date else None,
            "region": self.region,
            "location": self.location,
            "carrier_name": self.carrier_name,
            "carrier_id": self.carrier_id,
            "request_type": self.request_type,
            "vehicle_plate": self.vehicle_plate,
            "materials": list(self.materials or []),
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_name": self.closed_by_name,
            "can_reopen": self.can_reopen,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
