"""Organization code extraction and tenant isolation tests."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from manahr.common.exceptions import BadRequestException
from manahr.common.tenancy import (
    TenantScope,
    extract_organization_code,
    normalize_organization_code,
)
from manahr.core_hr.models import User
from tests.conftest import auth_headers_for, make_org, make_user


# ═════════════════════════════════════════════════════════════════════
# 1. FORMAT
# ═════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("ac", "AC"),
        ("ACME", "ACME"),
        ("  acme1 ", "ACME1"),
        ("A1B2C3D4E5", "A1B2C3D4E5"),
    ],
)
def test_valid_codes_are_normalized(raw, expected):
    assert normalize_organization_code(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["A", "ABCDEFGHIJK", "ACME-1", "AC ME", "ACMÉ", "", "   ", None, 42],
)
def test_invalid_codes_are_rejected(raw):
    with pytest.raises(BadRequestException) as exc_info:
        normalize_organization_code(raw)
    assert exc_info.value.status_code == 400
    assert "organization_code" in exc_info.value.errors


def test_header_takes_precedence_over_body_and_query():
    code = extract_organization_code(
        "hdr1", {"organizationCode": "BODY"}, {"organization_code": "QRY"},
    )
    assert code == "HDR1"


def test_body_used_when_header_missing():
    assert extract_organization_code(None, {"organization_code": "body"}, {"organizationCode": "QRY"}) == "BODY"


def test_query_used_when_header_and_body_missing():
    assert extract_organization_code("", {}, {"organizationCode": "qry"}) == "QRY"


def test_missing_everywhere_is_rejected():
    with pytest.raises(BadRequestException):
        extract_organization_code(None, None, None)


def test_invalid_header_does_not_fall_back_to_body():
    with pytest.raises(BadRequestException):
        extract_organization_code("ACME-1", {"organization_code": "ACME"}, None)


# ═════════════════════════════════════════════════════════════════════
# 2. TENANT-SCOPED QUERIES
# ═════════════════════════════════════════════════════════════════════


async def test_scope_select_only_returns_own_tenant(db):
    await make_org(db, code="ACME")
    await make_org(db, code="WIDGE")
    a = await make_user(db, org="ACME")
    b = await make_user(db, org="WIDGE")

    rows = (await db.execute(TenantScope(db, "ACME").select(User))).scalars().all()
    assert [u.id for u in rows] == [a.id]

    assert await TenantScope(db, "ACME").get(User, b.id) is None
    assert (await TenantScope(db, "WIDGE").get(User, b.id)).id == b.id


async def test_scope_add_stamps_organization_code(db):
    await make_org(db, code="WIDGE")
    user = User(
        full_name="Scoped",
        email="scoped@example.com",
        password_hash="x",
        role=5,
    )
    TenantScope(db, "WIDGE").add(user)
    await db.flush()

    stored = (await db.execute(select(User).where(User.id == user.id))).scalars().one()
    assert stored.organization_code == "WIDGE"


# ═════════════════════════════════════════════════════════════════════
# 3. GATE OVER HTTP
# ═════════════════════════════════════════════════════════════════════


async def test_missing_organization_code_is_400(client, db, employee):
    headers = await auth_headers_for(db, employee)
    await db.commit()
    headers.pop("X-Organization-Code")

    resp = await client.get("/api/v1/attendance/status", headers=headers)
    assert resp.status_code == 400
    body = resp.json()
    assert body["type"].endswith("/bad-request")
    assert "organization_code" in body["errors"]


async def test_malformed_organization_code_is_400(client, employee_headers):
    headers = {**employee_headers, "X-Organization-Code": "ACME-1"}
    resp = await client.get("/api/v1/attendance/status", headers=headers)
    assert resp.status_code == 400


async def test_lowercase_header_is_normalized(client, employee_headers):
    headers = {**employee_headers, "X-Organization-Code": "acme"}
    resp = await client.get("/api/v1/attendance/status", headers=headers)
    assert resp.status_code == 200


async def test_query_parameter_is_accepted(client, employee_headers):
    headers = dict(employee_headers)
    headers.pop("X-Organization-Code")
    resp = await client.get(
        "/api/v1/attendance/status", headers=headers, params={"organizationCode": "ACME"},
    )
    assert resp.status_code == 200


async def test_other_organization_code_is_403(client, db, employee_headers):
    await make_org(db, code="WIDGE")
    await db.commit()
    headers = {**employee_headers, "X-Organization-Code": "WIDGE"}
    resp = await client.get("/api/v1/attendance/status", headers=headers)
    assert resp.status_code == 403


async def test_users_list_is_tenant_isolated(client, db, hr_user, hr_headers):
    await make_org(db, code="WIDGE")
    outsider = await make_user(db, org="WIDGE", email="outsider@widge.com")
    await db.commit()

    resp = await client.get("/api/v1/users", headers=hr_headers)
    assert resp.status_code == 200
    ids = {row["id"] for row in resp.json()["data"]}
    assert str(hr_user.id) in ids
    assert str(outsider.id) not in ids

    resp = await client.get(f"/api/v1/users/{outsider.id}", headers=hr_headers)
    assert resp.status_code == 404
