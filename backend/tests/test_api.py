"""
HTTP API tests.

Verifies:
- Protected endpoints return 401 without a token
- Service errors map onto 400/403/404/409 JSON responses
- Successful writes record an activity entry for the caller
"""

import pytest

from permit_tracker.extensions import db
from permit_tracker.models import ActivityLog, Permit

from conftest import PASSWORD, auth_headers, auth_headers_for, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/permits"),
            ("POST", "/api/permits"),
            ("GET", "/api/permits/export"),
            ("GET", "/api/permits/some-id"),
            ("PUT", "/api/permits/some-id"),
            ("DELETE", "/api/permits/some-id"),
            ("PATCH", "/api/permits/some-id/close"),
            ("PATCH", "/api/permits/some-id/reopen"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/users/role-permissions"),
            ("PUT", "/api/users/role-permissions/observer"),
            ("GET", "/api/activity"),
            ("POST", "/api/activity"),
            ("GET", "/api/activity/actions"),
            ("GET", "/api/regions"),
            ("GET", "/api/statistics"),
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/permits", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:
    def test_login_and_me(self, client, observer):
        token = get_auth_token(client, observer.username, PASSWORD)
        assert token

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == observer.username
        assert resp.json["user"]["region"] == ["riyadh"]
        assert resp.json["permissions"]["canViewPermits"] is True
        assert resp.json["permissions"]["canCreatePermits"] is False

    def test_login_response_shape(self, client, manager):
        resp = client.post("/api/auth/login", json={"username": manager.username, "password": PASSWORD})
        assert resp.status_code == 200
        assert set(resp.json) == {"user", "permissions", "token", "session", "message"}
        assert "password" not in resp.json["user"]

        actions = [a.action for a in db.session.query(ActivityLog).filter_by(user_id=manager.id)]
        assert actions == ["login"]

    def test_login_wrong_password(self, client, observer):
        resp = client.post("/api/auth/login", json={"username": observer.username, "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "x"})
        assert resp.status_code == 400

    def test_register_disabled(self, client, db_session):
        resp = client.post("/api/auth/register", json={"username": "x"})
        assert resp.status_code == 403

    def test_logout_revokes_token(self, client, observer):
        token = get_auth_token(client, observer.username, PASSWORD)
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_reset_password(self, client, observer):
        token = get_auth_token(client, observer.username, PASSWORD)

        resp = client.post("/api/auth/reset-password", json={
            "username": observer.username,
            "oldPassword": PASSWORD,
            "newPassword": "Br4ndNewPass!",
        })
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        assert get_auth_token(client, observer.username, "Br4ndNewPass!")

    def test_reset_password_wrong_old(self, client, observer):
        resp = client.post("/api/auth/reset-password", json={
            "username": observer.username,
            "oldPassword": "Wrong123!",
            "newPassword": "Br4ndNewPass!",
        })
        assert resp.status_code == 401

    def test_reset_password_weak_new(self, client, observer):
        resp = client.post("/api/auth/reset-password", json={
            "username": observer.username,
            "oldPassword": PASSWORD,
            "newPassword": "weak",
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "password"


# =============================================================================
# PERMITS
# =============================================================================


class TestPermitRoutes:
    def test_manager_creates_permit(self, client, manager, manager_headers, permit_payload):
        resp = client.post("/api/permits", json=permit_payload, headers=manager_headers)

        assert resp.status_code == 201
        permit = resp.json["permit"]
        assert permit["region"] == "riyadh"
        assert permit["created_by"] == manager.id
        assert permit["closed_at"] is None

        entry = db.session.query(ActivityLog).filter_by(user_id=manager.id, action="create_permit").one()
        assert permit["permit_number"] in entry.details

    def test_observer_cannot_create(self, client, observer_headers, permit_payload):
        resp = client.post("/api/permits", json=permit_payload, headers=observer_headers)
        assert resp.status_code == 403
        assert db.session.query(Permit).count() == 0

    def test_invalid_region(self, client, admin_headers, permit_payload):
        resp = client.post("/api/permits", json={**permit_payload, "region": "atlantis"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "region"

    def test_list_is_scoped(self, client, observer_headers, make_permit):
        make_permit("riyadh")
        make_permit("dammam")

        resp = client.get("/api/permits", headers=observer_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["permits"][0]["region"] == "riyadh"

    def test_list_filters(self, client, manager_headers, make_permit, officer):
        make_permit("riyadh")
        make_permit("dammam", closed_by=officer)

        resp = client.get("/api/permits?status=closed", headers=manager_headers)
        assert resp.json["count"] == 1
        assert resp.json["permits"][0]["region"] == "dammam"

        assert client.get("/api/permits?status=bogus", headers=manager_headers).status_code == 400

    def test_out_of_scope_is_404(self, client, observer_headers, make_permit):
        permit = make_permit("dammam")
        assert client.get(f"/api/permits/{permit.id}", headers=observer_headers).status_code == 404
        assert client.get("/api/permits/missing", headers=observer_headers).status_code == 404

    def test_update_closed_permit_conflict(self, client, admin_headers, officer, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        resp = client.put(f"/api/permits/{permit.id}", json={"location": "X"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_update_open_permit(self, client, manager_headers, make_permit):
        permit = make_permit("riyadh")
        resp = client.put(f"/api/permits/{permit.id}", json={"location": "East Gate"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["permit"]["location"] == "East Gate"

    def test_close_and_reopen(self, client, officer, officer_headers, make_permit):
        permit = make_permit("riyadh")

        resp = client.patch(f"/api/permits/{permit.id}/close", headers=officer_headers)
        assert resp.status_code == 200
        assert resp.json["permit"]["closed_by"] == officer.id
        assert resp.json["permit"]["closed_by_name"] == "Officer Tester"

        resp = client.patch(f"/api/permits/{permit.id}/reopen", headers=officer_headers)
        assert resp.status_code == 200
        assert resp.json["permit"]["closed_at"] is None

        actions = [a.action for a in db.session.query(ActivityLog).filter_by(user_id=officer.id)]
        assert sorted(actions) == ["close_permit", "reopen_permit"]

    def test_reopen_by_other_officer_conflict(self, client, officer, officer_two, make_permit):
        permit = make_permit("riyadh", closed_by=officer)
        resp = client.patch(f"/api/permits/{permit.id}/reopen", headers=auth_headers_for(officer_two))
        assert resp.status_code == 409

    def test_close_without_capability(self, client, observer_headers, make_permit):
        permit = make_permit("riyadh")
        resp = client.patch(f"/api/permits/{permit.id}/close", headers=observer_headers)
        assert resp.status_code == 403

    def test_delete(self, client, admin_headers, manager_headers, make_permit):
        permit = make_permit("riyadh")
        assert client.delete(f"/api/permits/{permit.id}", headers=manager_headers).status_code == 403
        assert client.delete(f"/api/permits/{permit.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/permits/{permit.id}", headers=admin_headers).status_code == 404

    def test_export(self, client, manager_headers, officer_headers, make_permit):
        make_permit("riyadh", permit_number="CSV000001")

        resp = client.get("/api/permits/export", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "CSV000001" in resp.get_data(as_text=True)

        assert client.get("/api/permits/export", headers=officer_headers).status_code == 403


# =============================================================================
# USERS AND ROLE PERMISSIONS
# =============================================================================


class TestUserRoutes:
    def test_observer_lists_only_self(self, client, admin, observer, observer_headers):
        resp = client.get("/api/users", headers=observer_headers)
        assert resp.status_code == 200
        assert [u["id"] for u in resp.json["users"]] == [observer.id]
        assert client.get(f"/api/users/{admin.id}", headers=observer_headers).status_code == 404

    def test_admin_creates_user(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "api_user",
            "email": "api_user@example.com",
            "password": "Api1Password!",
            "first_name": "Api",
            "last_name": "User",
            "region": ["jeddah"],
            "role": "security_officer",
        }, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["user"]["region"] == ["jeddah"]
        assert resp.json["user"]["role"] == "security_officer"

    def test_create_user_unknown_region(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "api_user",
            "email": "api_user@example.com",
            "password": "Api1Password!",
            "first_name": "Api",
            "last_name": "User",
            "region": ["atlantis"],
        }, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "region"

    def test_manager_cannot_create_user(self, client, manager_headers):
        resp = client.post("/api/users", json={
            "username": "api_user",
            "email": "api_user@example.com",
            "password": "Api1Password!",
            "first_name": "Api",
            "last_name": "User",
        }, headers=manager_headers)
        assert resp.status_code == 403

    def test_admin_cannot_delete_self(self, client, admin, admin_headers):
        resp = client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert resp.status_code == 403

    def test_delete_referenced_user(self, client, admin_headers, manager, make_permit):
        make_permit("riyadh", created_by=manager)
        resp = client.delete(f"/api/users/{manager.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_update_user(self, client, admin_headers, observer):
        resp = client.put(f"/api/users/{observer.id}", json={"region": ["qassim", "hail"]}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["region"] == ["qassim", "hail"]

    def test_role_permissions_readable(self, client, observer_headers):
        resp = client.get("/api/users/role-permissions", headers=observer_headers)
        assert resp.status_code == 200
        assert [row["role"] for row in resp.json["role_permissions"]] == [
            "admin", "manager", "security_officer", "observer",
        ]

    def test_role_permissions_admin_only(self, client, admin_headers, manager_headers):
        body = {"permissions": {"canExportPermits": True}}

        assert client.put("/api/users/role-permissions/observer", json=body, headers=manager_headers).status_code == 403

        resp = client.put("/api/users/role-permissions/observer", json=body, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["role_permission"]["permissions"]["canExportPermits"] is True
        assert len(resp.json["role_permission"]["permissions"]) == 12

    def test_role_permissions_validation(self, client, admin_headers):
        resp = client.put(
            "/api/users/role-permissions/observer",
            json={"permissions": {"canFly": True}},
            headers=admin_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# ACTIVITY, REGIONS, STATISTICS, HEALTH
# =============================================================================


class TestActivityRoutes:
    def test_log_own_activity(self, client, observer, observer_headers):
        resp = client.post("/api/activity", json={"action": "view_permit", "details": "Opened permit"}, headers=observer_headers)
        assert resp.status_code == 201
        assert resp.json["activity"]["user_id"] == observer.id

    def test_log_for_other_user_forbidden(self, client, manager, observer_headers):
        resp = client.post(
            "/api/activity",
            json={"action": "login", "details": "spoof", "user_id": manager.id},
            headers=observer_headers,
        )
        assert resp.status_code == 403

    def test_observer_reads_empty_log(self, client, manager, observer_headers):
        client.post("/api/activity", json={"action": "login", "details": "x"}, headers=auth_headers_for(manager))

        resp = client.get("/api/activity", headers=observer_headers)
        assert resp.status_code == 200
        assert resp.json["activities"] == []
        assert resp.json["total"] == 0

    def test_officer_reads_log(self, client, manager, officer_headers):
        client.post("/api/activity", json={"action": "login", "details": "x"}, headers=auth_headers_for(manager))

        resp = client.get("/api/activity", headers=officer_headers)
        assert resp.json["total"] == 1
        assert client.get("/api/activity/actions", headers=officer_headers).json["actions"] == ["login"]


class TestMiscRoutes:
    def test_regions(self, client, observer_headers):
        resp = client.get("/api/regions", headers=observer_headers)
        assert resp.status_code == 200
        assert len(resp.json["regions"]) == 19

    def test_statistics(self, client, manager_headers, observer_headers, make_permit):
        make_permit("riyadh")
        resp = client.get("/api/statistics", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["statistics"]["permits"]["total"] == 1
        assert len(resp.json["statistics"]["users"]) == 4

        assert client.get("/api/statistics", headers=observer_headers).status_code == 403

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["regions"] == 19

    def test_cors_allowed_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_cors_unknown_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
