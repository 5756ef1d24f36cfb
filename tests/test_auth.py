"""Auth test suite — registration, password login, token refresh and rotation,
logout, permissions on /me, password change.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import select

from manahr.auth import service as auth_service
from manahr.auth.models import UserSession
from manahr.common.constants import DEFAULT_ROLE_PERMISSIONS, RoleLevel, UserStatus
from manahr.common.datetime_utils import utcnow
from manahr.common.exceptions import ForbiddenException, UnauthorizedException
from manahr.config import settings
from manahr.core_hr.models import Organization, User
from tests.conftest import TEST_PASSWORD, auth_headers_for, make_org, make_user

ORG = {"X-Organization-Code": "ACME"}


def _register_body(email="new.hire@example.com", **kw) -> dict:
    return {
        "full_name": "New Hire",
        "email": email,
        "password": "Str0ngPassw0rd",
        "organization": "Acme Corp",
        **kw,
    }


# ═════════════════════════════════════════════════════════════════════
# 1. REGISTER
# ═════════════════════════════════════════════════════════════════════


async def test_register_creates_org_and_employee(client, db):
    resp = await client.post("/api/v1/auth/register", json=_register_body(), headers=ORG)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == int(RoleLevel.EMPLOYEE)
    assert data["user"]["organization_code"] == "ACME"

    org = (await db.execute(select(Organization).where(Organization.code == "ACME"))).scalars().first()
    assert org is not None
    assert org.name == "Acme Corp"


async def test_register_accepts_code_in_body(client):
    resp = await client.post(
        "/api/v1/auth/register",
        json=_register_body(organization_code="widge"),
    )
    assert resp.status_code == 201
    assert resp.json()["user"]["organization_code"] == "WIDGE"


async def test_register_duplicate_email_same_org_conflicts(client):
    first = await client.post("/api/v1/auth/register", json=_register_body(), headers=ORG)
    assert first.status_code == 201
    again = await client.post(
        "/api/v1/auth/register", json=_register_body(email="NEW.HIRE@example.com"), headers=ORG,
    )
    assert again.status_code == 409


async def test_same_email_in_two_orgs_is_allowed(client):
    a = await client.post("/api/v1/auth/register", json=_register_body(), headers=ORG)
    b = await client.post(
        "/api/v1/auth/register", json=_register_body(), headers={"X-Organization-Code": "WIDGE"},
    )
    assert a.status_code == 201
    assert b.status_code == 201
    assert a.json()["user"]["id"] != b.json()["user"]["id"]


async def test_register_without_org_code_is_400(client):
    resp = await client.post("/api/v1/auth/register", json=_register_body())
    assert resp.status_code == 400


async def test_register_weak_password_is_422(client):
    resp = await client.post(
        "/api/v1/auth/register", json=_register_body(password="short"), headers=ORG,
    )
    assert resp.status_code == 422
    assert "password" in resp.json()["errors"]


# ═════════════════════════════════════════════════════════════════════
# 2. LOGIN
# ═════════════════════════════════════════════════════════════════════


async def test_login_success_persists_session(client, db, employee):
    await db.commit()
    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": employee.email, "password": TEST_PASSWORD},
        headers=ORG,
    )
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]

    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload["sub"] == str(employee.id)
    assert payload["org"] == "ACME"
    assert payload["type"] == "access"

    session = (
        await db.execute(
            select(UserSession).where(UserSession.token_hash == auth_service.hash_token(token))
        )
    ).scalars().first()
    assert session is not None


async def test_login_wrong_password_is_401(client, db, employee):
    await db.commit()
    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": employee.email, "password": "nope-nope"},
        headers=ORG,
    )
    assert resp.status_code == 401


async def test_login_is_scoped_to_organization(client, db, employee):
    await make_org(db, code="WIDGE")
    await db.commit()
    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": employee.email, "password": TEST_PASSWORD},
        headers={"X-Organization-Code": "WIDGE"},
    )
    assert resp.status_code == 401


async def test_login_suspended_user_is_403(db, org):
    user = await make_user(db, status=UserStatus.suspended)
    with pytest.raises(ForbiddenException):
        await auth_service.authenticate(db, user.email, TEST_PASSWORD, "ACME")


# ═════════════════════════════════════════════════════════════════════
# 3. TOKENS AND SESSIONS
# ═════════════════════════════════════════════════════════════════════


async def test_missing_bearer_is_401(client):
    resp = await client.get("/api/v1/auth/me")
    assert resp.status_code == 401


async def test_expired_token_is_401(client, db, employee):
    payload = {
        "sub": str(employee.id),
        "type": "access",
        "exp": utcnow() - timedelta(minutes=1),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    await db.commit()
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"].lower()


async def test_token_without_session_is_401(client, db, employee):
    token, _ = auth_service.create_access_token(employee)
    await db.commit()
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_me_returns_effective_permissions(client, manager, db):
    headers = await auth_headers_for(db, manager)
    await db.commit()

    resp = await client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["role"] == int(RoleLevel.MANAGER)
    assert sorted(data["permissions"]) == sorted(DEFAULT_ROLE_PERMISSIONS[RoleLevel.MANAGER])


async def test_deactivated_user_token_stops_working(client, db, employee, employee_headers):
    employee.status = UserStatus.inactive
    await db.commit()
    resp = await client.get("/api/v1/auth/me", headers=employee_headers)
    assert resp.status_code == 401


async def test_refresh_rotates_and_detects_reuse(db, employee):
    _, refresh, _ = await auth_service.create_session(db, employee)

    access2, refresh2, _ = await auth_service.refresh_access_token(db, refresh)
    assert refresh2 != refresh
    assert access2

    with pytest.raises(ForbiddenException):
        await auth_service.refresh_access_token(db, refresh)

    active = (
        await db.execute(
            select(UserSession).where(
                UserSession.user_id == employee.id,
                UserSession.is_revoked.is_(False),
            )
        )
    ).scalars().all()
    assert active == []


async def test_refresh_with_access_token_is_rejected(db, employee):
    access, _, _ = await auth_service.create_session(db, employee)
    with pytest.raises(UnauthorizedException):
        await auth_service.refresh_access_token(db, access)


async def test_logout_revokes_session(client, employee_headers):
    resp = await client.post("/api/v1/auth/logout", headers=employee_headers)
    assert resp.status_code == 200

    resp = await client.get("/api/v1/auth/me", headers=employee_headers)
    assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# 4. PASSWORD CHANGE
# ═════════════════════════════════════════════════════════════════════


async def test_change_password_revokes_sessions(client, db, employee, employee_headers):
    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "An0therStrongOne"},
        headers=employee_headers,
    )
    assert resp.status_code == 200

    resp = await client.get("/api/v1/auth/me", headers=employee_headers)
    assert resp.status_code == 401

    resp = await client.post(
        "/api/v1/auth/login",
        json={"email": employee.email, "password": "An0therStrongOne"},
        headers=ORG,
    )
    assert resp.status_code == 200


async def test_change_password_wrong_current_is_400(client, employee_headers):
    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "wrong-one", "new_password": "An0therStrongOne"},
        headers=employee_headers,
    )
    assert resp.status_code == 400
    assert "current_password" in resp.json()["errors"]


async def test_password_is_hashed_with_werkzeug(client, db):
    resp = await client.post("/api/v1/auth/register", json=_register_body(), headers=ORG)
    user_id = resp.json()["user"]["id"]
    import uuid

    user = (await db.execute(select(User).where(User.id == uuid.UUID(user_id)))).scalars().one()
    assert user.password_hash != "Str0ngPassw0rd"
    assert user.password_hash.startswith(("scrypt:", "pbkdf2:"))
