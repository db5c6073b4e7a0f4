"""
Permission gate and JWT principal resolution.

Test blocks:
  1. authorize() role matrix
  2. load_principal() from the users table
  3. JWT middleware → principal on real requests
"""

import pytest

from wrapflow.core.exceptions import InsufficientPermissionsError, UnauthorizedError
from wrapflow.models import db as _db
from wrapflow.services.permission_gate import (
    MUTATING_ROLES,
    READ_ROLES,
    Principal,
    authorize,
    load_principal,
)


# ── 1. authorize() ───────────────────────────────────────────────────────


@pytest.mark.parametrize("role", ["ADMINISTRATOR", "MANAGER"])
def test_mutating_roles_pass(role):
    principal = Principal(user_id="u-1", role=role)
    assert authorize(principal) is principal


def test_staff_cannot_mutate():
    with pytest.raises(InsufficientPermissionsError) as exc:
        authorize(Principal(user_id="u-1", role="STAFF"))
    assert exc.value.details["role"] == "STAFF"
    assert exc.value.details["required_roles"] == sorted(MUTATING_ROLES)


def test_staff_can_read():
    principal = Principal(user_id="u-1", role="STAFF")
    assert authorize(principal, READ_ROLES) is principal


def test_missing_principal_is_unauthorized():
    with pytest.raises(UnauthorizedError):
        authorize(None)


def test_principal_without_user_id_is_unauthorized():
    with pytest.raises(UnauthorizedError):
        authorize(Principal(user_id="", role="ADMINISTRATOR"))


def test_unknown_role_is_forbidden_even_for_reads():
    with pytest.raises(InsufficientPermissionsError):
        authorize(Principal(user_id="u-1", role="GUEST"), READ_ROLES)


# ── 2. load_principal() ──────────────────────────────────────────────────


def test_load_principal_reads_role_from_db(manager):
    principal = load_principal(manager.id)
    assert principal == Principal(user_id=manager.id, role="MANAGER")


def test_load_principal_unknown_user():
    assert load_principal("does-not-exist") is None
    assert load_principal(None) is None


def test_load_principal_inactive_user(staff):
    staff.is_active = False
    _db.session.commit()
    assert load_principal(staff.id) is None


# ── 3. Requests ──────────────────────────────────────────────────────────


def test_request_without_token_is_401(client):
    res = client.get("/api/v1/workflows")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_request_with_invalid_token_is_401(client):
    res = client.get("/api/v1/workflows", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_expired_token_is_401(client, admin, auth_headers):
    res = client.get("/api/v1/workflows", headers=auth_headers(admin, expires_in=-10))
    assert res.status_code == 401


def test_staff_token_reads_but_cannot_write(client, staff, auth_headers):
    headers = auth_headers(staff)
    assert client.get("/api/v1/workflows", headers=headers).status_code == 200

    res = client.post("/api/v1/workflows", json={"name": "Fleet"}, headers=headers)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_demoted_user_loses_write_access(client, manager, auth_headers):
    headers = auth_headers(manager)
    manager.role = "STAFF"
    _db.session.commit()

    res = client.post("/api/v1/workflows", json={"name": "Fleet"}, headers=headers)
    assert res.status_code == 403


def test_health_needs_no_token(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"
