"""
Permit service tests.

Verifies:
- Region-scoped visibility is exactly the caller's region set (or all permits
  for admins and managers)
- Creation and update rules, including closed-permit immutability
- Close / reopen lifecycle and the reopen capability matrix
- Filters, permit number generation and CSV export
"""

from datetime import date

import pytest

from permit_tracker.extensions import db
from permit_tracker.models import Permit
from permit_tracker.permissions import Role
from permit_tracker.services import permit_service, role_permission_service
from permit_tracker.services.authorization import AuthorizationError
from permit_tracker.services.permit_service import ConstraintError
from permit_tracker.time_utils import utcnow
from permit_tracker.validation import ConflictError, NotFoundError, ValidationError


# =============================================================================
# VISIBILITY
# =============================================================================


class TestVisibility:
    """Reading permits returns exactly the authorized set."""

    @pytest.fixture
    def spread(self, make_permit):
        return {
            region: make_permit(region)
            for region in ("riyadh", "dammam", "jeddah", "makkah", "headquarters")
        }

    def test_visible_set_per_user(self, spread, admin, manager, officer, officer_east, observer, observer_west):
        all_ids = {p.id for p in spread.values()}

        for user in (admin, manager, officer, officer_east, observer, observer_west):
            visible = {p.id for p in permit_service.list_permits(user.id)}
            if user.role in (Role.ADMIN.value, Role.MANAGER.value):
                expected = all_ids
            else:
                expected = {p.id for p in spread.values() if p.region in user.regions}
            assert visible == expected, user.username

    def test_out_of_scope_permit_reads_as_missing(self, spread, observer):
        assert permit_service.get_permit(observer.id, spread["dammam"].id) is None
        assert permit_service.get_permit(observer.id, "does-not-exist") is None
        assert permit_service.get_permit(observer.id, spread["riyadh"].id).id == spread["riyadh"].id

    def test_region_change_applies_immediately(self, spread, observer):
        observer.regions = ["dammam"]
        db.session.commit()

        visible = {p.region for p in permit_service.list_permits(observer.id)}
        assert visible == {"dammam"}


# =============================================================================
# CREATE
# =============================================================================


class TestCreatePermit:
    def test_manager_creates_in_region(self, manager, permit_payload):
        permit = permit_service.create_permit(manager.id, permit_payload)

        assert permit.region == "riyadh"
        assert permit.created_by == manager.id
        assert permit.closed_at is None
        assert permit.can_reopen is True
        assert permit.date == date(2025, 2, 1)
        assert permit.materials == ["steel beams", {"name": "gravel", "quantity": "20t"}]
        assert permit.permit_number.startswith("MHV")

    def test_manager_outside_region_denied(self, manager, permit_payload):
        with pytest.raises(AuthorizationError):
            permit_service.create_permit(manager.id, {**permit_payload, "region": "dammam"})
        assert db.session.query(Permit).count() == 0

    def test_admin_creates_anywhere(self, admin, permit_payload):
        permit = permit_service.create_permit(admin.id, {**permit_payload, "region": "najran"})
        assert permit.region == "najran"

    @pytest.mark.parametrize("fixture_name", ["officer", "observer"])
    def test_non_writers_denied(self, request, fixture_name, permit_payload):
        user = request.getfixturevalue(fixture_name)
        with pytest.raises(AuthorizationError):
            permit_service.create_permit(user.id, permit_payload)

    def test_invalid_region(self, admin, permit_payload):
        with pytest.raises(ValidationError) as excinfo:
            permit_service.create_permit(admin.id, {**permit_payload, "region": "atlantis"})
        assert excinfo.value.field == "region"

    def test_invalid_request_type(self, admin, permit_payload):
        with pytest.raises(ValidationError) as excinfo:
            permit_service.create_permit(admin.id, {**permit_payload, "request_type": "teleport"})
        assert excinfo.value.field == "request_type"

    def test_missing_fields(self, admin):
        with pytest.raises(ValidationError):
            permit_service.create_permit(admin.id, {"region": "riyadh"})

    def test_unknown_field_rejected(self, admin, permit_payload):
        with pytest.raises(ValidationError) as excinfo:
            permit_service.create_permit(admin.id, {**permit_payload, "closed_by": admin.id})
        assert excinfo.value.field == "closed_by"

    def test_bad_materials(self, admin, permit_payload):
        with pytest.raises(ValidationError) as excinfo:
            permit_service.create_permit(admin.id, {**permit_payload, "materials": "cement"})
        assert excinfo.value.field == "materials"

    def test_duplicate_number(self, admin, permit_payload, make_permit):
        make_permit("dammam", permit_number="MHV2025000001")
        with pytest.raises(ConflictError):
            permit_service.create_permit(admin.id, {**permit_payload, "permit_number": "MHV2025000001"})

    def test_unknown_caller(self, db_session, permit_payload):
        with pytest.raises(AuthorizationError):
            permit_service.create_permit("ghost", permit_payload)


class TestPermitNumbers:
    def test_sequence_per_year(self, db_session):
        assert permit_service.generate_permit_number(2025) == "MHV2025000001"

    def test_skips_taken_numbers(self, make_permit):
        make_permit(permit_number="MHV2025000001")
        make_permit(permit_number="MHV2025000002")
        assert permit_service.generate_permit_number(2025) == "MHV2025000003"

    def test_create_assigns_next_number(self, manager, make_permit, permit_payload):
        year = utcnow().year
        make_permit("dammam", permit_number=f"MHV{year}000001")
        permit = permit_service.create_permit(manager.id, permit_payload)
        assert permit.permit_number == f"MHV{year}000002"


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdatePermit:
    def test_partial_update(self, manager, make_permit):
        permit = make_permit("riyadh")
        updated = permit_service.update_permit(manager.id, permit.id, {"location": "South Gate"})
        assert updated.location == "South Gate"
        assert updated.carrier_name == "Desert Haulage"

    @pytest.mark.parametrize("fixture_name", ["admin", "manager"])
    def test_closed_permit_is_immutable(self, request, fixture_name, officer, make_permit):
        user = request.getfixturevalue(fixture_name)
        permit = make_permit("riyadh", closed_by=officer)

        with pytest.raises(ConstraintError):
            permit_service.update_permit(user.id, permit.id, {"location": "Changed"})

        db.session.refresh(permit)
        assert permit.location == "Gate 3"

    def test_manager_cannot_edit_foreign_region(self, manager, make_permit):
        permit = make_permit("dammam")
        with pytest.raises(AuthorizationError):
            permit_service.update_permit(manager.id, permit.id, {"location": "Changed"})

    def test_manager_cannot_move_permit_out_of_region(self, manager, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(AuthorizationError):
            permit_service.update_permit(manager.id, permit.id, {"region": "dammam"})
        db.session.refresh(permit)
        assert permit.region == "riyadh"

    def test_observer_denied(self, observer, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(AuthorizationError):
            permit_service.update_permit(observer.id, permit.id, {"location": "Changed"})

    def test_invisible_permit_not_found(self, officer_east, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(NotFoundError):
            permit_service.update_permit(officer_east.id, permit.id, {"location": "Changed"})

    def test_lifecycle_fields_not_writable(self, admin, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(ValidationError):
            permit_service.update_permit(admin.id, permit.id, {"closed_at": "2025-01-01T00:00:00Z"})


# =============================================================================
# DELETE
# =============================================================================


class TestDeletePermit:
    def test_admin_deletes_closed_permit(self, admin, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        permit_id = permit.id
        permit_service.delete_permit(admin.id, permit_id)
        assert db.session.query(Permit).filter_by(id=permit_id).first() is None

    @pytest.mark.parametrize("fixture_name", ["manager", "officer", "observer"])
    def test_non_admin_denied(self, request, fixture_name, make_permit):
        user = request.getfixturevalue(fixture_name)
        permit = make_permit("riyadh")
        with pytest.raises(AuthorizationError):
            permit_service.delete_permit(user.id, permit.id)
        assert db.session.query(Permit).count() == 1

    def test_missing_permit(self, admin):
        with pytest.raises(NotFoundError):
            permit_service.delete_permit(admin.id, "nope")


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestClosePermit:
    def test_officer_closes(self, officer, make_permit):
        permit = make_permit("riyadh")
        closed = permit_service.close_permit(officer.id, permit.id)

        assert closed.closed_by == officer.id
        assert closed.closed_at is not None
        assert closed.closed_by_name == "Officer Tester"

    def test_close_twice(self, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        with pytest.raises(ConstraintError):
            permit_service.close_permit(officer.id, permit.id)

    def test_observer_cannot_close(self, observer, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(AuthorizationError):
            permit_service.close_permit(observer.id, permit.id)
        db.session.refresh(permit)
        assert permit.closed_at is None

    def test_officer_outside_region(self, officer_east, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(NotFoundError):
            permit_service.close_permit(officer_east.id, permit.id)

    def test_capability_removed_takes_effect(self, admin, officer, make_permit):
        permit = make_permit("riyadh")
        role_permission_service.set_capabilities(admin.id, "security_officer", {"canClosePermits": False})

        with pytest.raises(AuthorizationError):
            permit_service.close_permit(officer.id, permit.id)

    def test_user_override_grants_close(self, observer, make_permit):
        observer.permissions = {"canClosePermits": True}
        db.session.commit()

        permit = make_permit("riyadh")
        closed = permit_service.close_permit(observer.id, permit.id)
        assert closed.closed_by == observer.id


class TestReopenPermit:
    """Reopen succeeds iff can_reopen and (reopen-any or original closer)."""

    def _assert_still_closed(self, permit, closer):
        db.session.refresh(permit)
        assert permit.closed_at is not None
        assert permit.closed_by == closer.id

    def test_closer_reopens_own(self, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        reopened = permit_service.reopen_permit(officer.id, permit.id)
        assert reopened.closed_at is None

    def test_other_officer_denied(self, officer, officer_two, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        with pytest.raises(ConstraintError):
            permit_service.reopen_permit(officer_two.id, permit.id)
        self._assert_still_closed(permit, officer)

    def test_manager_reopens_any(self, manager, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        reopened = permit_service.reopen_permit(manager.id, permit.id)
        assert reopened.closed_by is None

    def test_can_reopen_false(self, admin, make_permit):
        permit = make_permit("riyadh", closed_by=admin, can_reopen=False)
        with pytest.raises(ConstraintError):
            permit_service.reopen_permit(admin.id, permit.id)
        self._assert_still_closed(permit, admin)

    def test_observer_lacks_capability(self, observer, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        with pytest.raises(ConstraintError):
            permit_service.reopen_permit(observer.id, permit.id)
        self._assert_still_closed(permit, officer)

    def test_open_permit(self, admin, make_permit):
        permit = make_permit("riyadh")
        with pytest.raises(ConstraintError):
            permit_service.reopen_permit(admin.id, permit.id)

    def test_round_trip_is_lossy(self, admin, permit_payload):
        permit = permit_service.create_permit(admin.id, {
            **permit_payload,
            "region": "riyadh",
            "request_type": "material_entrance",
        })

        closed = permit_service.close_permit(admin.id, permit.id)
        assert closed.closed_by == admin.id

        reopened = permit_service.reopen_permit(admin.id, permit.id)
        assert reopened.closed_at is None
        assert reopened.closed_by is None
        assert reopened.closed_by_name is None

    def test_reopened_permit_is_editable_again(self, manager, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        permit_service.reopen_permit(manager.id, permit.id)

        updated = permit_service.update_permit(manager.id, permit.id, {"location": "Reopened Gate"})
        assert updated.location == "Reopened Gate"


# =============================================================================
# FILTERS AND EXPORT
# =============================================================================


class TestFilters:
    @pytest.fixture
    def permits(self, make_permit, officer):
        return [
            make_permit("riyadh", carrier_name="Alpha Freight", date=date(2025, 1, 1)),
            make_permit("riyadh", request_type="heavy_vehicle_exit", date=date(2025, 2, 1), closed_by=officer),
            make_permit("dammam", vehicle_plate="ZZZ-0001", date=date(2025, 3, 1)),
        ]

    def test_status(self, admin, permits):
        assert len(permit_service.list_permits(admin.id, {"status": "open"})) == 2
        assert len(permit_service.list_permits(admin.id, {"status": "closed"})) == 1

    def test_invalid_status(self, admin, permits):
        with pytest.raises(ValidationError):
            permit_service.list_permits(admin.id, {"status": "pending"})

    def test_region_and_type(self, admin, permits):
        assert len(permit_service.list_permits(admin.id, {"region": "dammam"})) == 1
        assert len(permit_service.list_permits(admin.id, {"request_type": "heavy_vehicle_exit"})) == 1

    def test_search(self, admin, permits):
        assert [p.carrier_name for p in permit_service.list_permits(admin.id, {"search": "alpha"})] == ["Alpha Freight"]
        assert len(permit_service.list_permits(admin.id, {"search": "zzz-0001"})) == 1

    def test_date_range(self, admin, permits):
        found = permit_service.list_permits(admin.id, {"date_from": "2025-01-15", "date_to": "2025-02-15"})
        assert [p.date for p in found] == [date(2025, 2, 1)]

    def test_filters_never_widen_scope(self, observer, permits):
        assert permit_service.list_permits(observer.id, {"region": "dammam"}) == []


class TestExport:
    def test_manager_exports_visible(self, manager, make_permit):
        make_permit("riyadh", permit_number="EXP000001", materials=["sand", {"name": "rebar", "qty": "5"}])
        body = permit_service.export_permits_csv(manager.id)

        lines = body.strip().splitlines()
        assert lines[0].startswith("permit_number,date,region")
        assert "EXP000001" in lines[1]
        assert "sand; name=rebar, qty=5" in lines[1]

    def test_officer_cannot_export(self, officer):
        with pytest.raises(AuthorizationError):
            permit_service.export_permits_csv(officer.id)
