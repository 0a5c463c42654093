"""
Pytest fixtures for permit tracker backend tests.

Provides an in-memory database with seeded regions and role capability
vectors, one user per role (plus a few region variants), a permit factory
and bearer-token headers for the test client.

Fixtures run outside any acting context, so the row security guard does
not interfere with setup.
"""

from datetime import date

import pytest

from permit_tracker import create_app
from permit_tracker.extensions import db
from permit_tracker.models import Permit, User
from permit_tracker.permissions import Role
from permit_tracker.services import region_service, role_permission_service, session_service
from permit_tracker.services.auth_service import hash_password
from permit_tracker.time_utils import utcnow


PASSWORD = "Password123!"

# bcrypt at cost 12 is slow; hash once per run
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database with reference data for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        region_service.initialize_regions()
        role_permission_service.initialize_role_permissions()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username: str, role: Role, regions: list[str], **extra) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD_HASH,
        first_name=username.split("_")[0].title(),
        last_name="Tester",
        regions=regions,
        role=role.value,
        **extra,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    """Admin scoped to headquarters only (sees everything by role)."""
    return _make_user("admin_user", Role.ADMIN, ["headquarters"])


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_user("manager_riyadh", Role.MANAGER, ["riyadh"])


@pytest.fixture(scope='function')
def officer(db_session):
    return _make_user("officer_riyadh", Role.SECURITY_OFFICER, ["riyadh"])


@pytest.fixture(scope='function')
def officer_two(db_session):
    return _make_user("officer_second", Role.SECURITY_OFFICER, ["riyadh"])


@pytest.fixture(scope='function')
def officer_east(db_session):
    return _make_user("officer_dammam", Role.SECURITY_OFFICER, ["dammam"])


@pytest.fixture(scope='function')
def observer(db_session):
    return _make_user("observer_riyadh", Role.OBSERVER, ["riyadh"])


@pytest.fixture(scope='function')
def observer_west(db_session):
    return _make_user("observer_west", Role.OBSERVER, ["jeddah", "makkah"])


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory for ad-hoc users."""
    return _make_user


@pytest.fixture(scope='function')
def make_permit(db_session, admin):
    """Factory inserting a permit directly (bypasses services)."""
    counter = {"n": 0}

    def _make(region: str = "riyadh", *, created_by: User | None = None, closed_by: User | None = None, **fields) -> Permit:
        counter["n"] += 1
        permit = Permit(
            permit_number=fields.pop("permit_number", f"TEST{counter['n']:06d}"),
            date=fields.pop("date", date(2025, 1, 15)),
            region=region,
            location=fields.pop("location", "Gate 3"),
            carrier_name=fields.pop("carrier_name", "Desert Haulage"),
            carrier_id=fields.pop("carrier_id", "CR-100"),
            request_type=fields.pop("request_type", "material_entrance"),
            vehicle_plate=fields.pop("vehicle_plate", "ABC-1234"),
            materials=fields.pop("materials", ["cement"]),
            created_by=(created_by or admin).id,
            **fields,
        )
        if closed_by is not None:
            permit.closed_by = closed_by.id
            permit.closed_at = utcnow()
            permit.closed_by_name = f"{closed_by.first_name} {closed_by.last_name}"
        db.session.add(permit)
        db.session.commit()
        return permit

    return _make


@pytest.fixture(scope='function')
def permit_payload():
    return {
        "date": "2025-02-01",
        "region": "riyadh",
        "location": "North Gate",
        "carrier_name": "Gulf Transport",
        "carrier_id": "GT-77",
        "request_type": "material_entrance",
        "vehicle_plate": "XYZ-9876",
        "materials": ["steel beams", {"name": "gravel", "quantity": "20t"}],
    }


def auth_headers_for(user: User) -> dict:
    """Issue a session for user and return Authorization headers."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers_for(admin)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers_for(manager)


@pytest.fixture(scope='function')
def officer_headers(officer):
    return auth_headers_for(officer)


@pytest.fixture(scope='function')
def observer_headers(observer):
    return auth_headers_for(observer)


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
