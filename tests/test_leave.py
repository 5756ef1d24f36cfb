"""Leave test suite — leave types, applications, overlap, balance,
approvals by seniority, cancellation and HTTP flow.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from manahr.common.constants import LeaveStatus, RoleLevel, UserStatus
from manahr.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from manahr.leave.schemas import LeaveApplyRequest, LeaveTypeCreate, LeaveTypeUpdate
from manahr.leave.service import LeaveService, LeaveTypeService
from tests.conftest import auth_headers_for, make_org, make_user

TODAY = date(2026, 3, 2)


async def _leave_type(db, name="Annual", days_allowed=12, **kw):
    return await LeaveTypeService.create_leave_type(
        db, LeaveTypeCreate(name=name, days_allowed=days_allowed, **kw), "ACME",
    )


def _request(leave_type, start: date, end: date, reason="Family trip") -> LeaveApplyRequest:
    return LeaveApplyRequest(
        leave_type_id=leave_type.id, start_date=start, end_date=end, reason=reason,
    )


async def _apply(db, user, leave_type, start: date, end: date):
    return await LeaveService.apply_leave(db, user, _request(leave_type, start, end), today=TODAY)


# ═════════════════════════════════════════════════════════════════════
# 1. LEAVE TYPES
# ═════════════════════════════════════════════════════════════════════


async def test_create_leave_type(db, org):
    leave_type = await _leave_type(db, name="  Sick  ", days_allowed=6)
    assert leave_type.name == "Sick"
    assert leave_type.organization_code == "ACME"
    assert leave_type.is_active is True


async def test_leave_type_name_unique_case_insensitive(db, org):
    await _leave_type(db, name="Annual")
    with pytest.raises(ConflictError):
        await _leave_type(db, name="annual")


async def test_same_leave_type_name_in_other_org(db, org):
    await _leave_type(db, name="Annual")
    await make_org(db, code="WIDGE")
    other = await LeaveTypeService.create_leave_type(
        db, LeaveTypeCreate(name="Annual", days_allowed=20), "WIDGE",
    )
    assert other.organization_code == "WIDGE"


async def test_consecutive_limit_cannot_exceed_allowance(db, org):
    with pytest.raises(ValidationException):
        await _leave_type(db, days_allowed=5, max_consecutive_days=6)


async def test_update_leave_type(db, org):
    leave_type = await _leave_type(db)
    await _leave_type(db, name="Sick")

    updated = await LeaveTypeService.update_leave_type(
        db, leave_type.id, LeaveTypeUpdate(days_allowed=15, is_active=False), "ACME",
    )
    assert updated.days_allowed == 15
    assert [t.name for t in await LeaveTypeService.get_leave_types(db, "ACME")] == ["Sick"]

    with pytest.raises(ConflictError):
        await LeaveTypeService.update_leave_type(
            db, leave_type.id, LeaveTypeUpdate(name="SICK"), "ACME",
        )


async def test_delete_leave_type_in_use_conflicts(db, employee):
    leave_type = await _leave_type(db)
    await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 11))
    with pytest.raises(ConflictError):
        await LeaveTypeService.delete_leave_type(db, leave_type.id, "ACME")


async def test_delete_unused_leave_type(db, org):
    leave_type = await _leave_type(db)
    await LeaveTypeService.delete_leave_type(db, leave_type.id, "ACME")
    with pytest.raises(NotFoundException):
        await LeaveTypeService.get_leave_type_by_id(db, leave_type.id, "ACME")


# ═════════════════════════════════════════════════════════════════════
# 2. APPLY
# ═════════════════════════════════════════════════════════════════════


async def test_apply_creates_pending_application(db, employee):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))

    assert leave.status == LeaveStatus.pending
    assert leave.total_days == 3
    assert leave.organization_code == "ACME"
    assert leave.applied_at is not None


@pytest.mark.parametrize(
    "start, end",
    [
        (date(2026, 3, 12), date(2026, 3, 12)),
        (date(2026, 3, 8), date(2026, 3, 10)),
        (date(2026, 3, 11), date(2026, 3, 20)),
        (date(2026, 3, 5), date(2026, 3, 15)),
    ],
)
async def test_overlap_with_pending_application_conflicts(db, employee, start, end):
    leave_type = await _leave_type(db, days_allowed=30)
    await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    with pytest.raises(ConflictError) as exc_info:
        await _apply(db, employee, leave_type, start, end)
    assert exc_info.value.status_code == 409


async def test_adjacent_ranges_do_not_overlap(db, employee):
    leave_type = await _leave_type(db)
    await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    leave = await _apply(db, employee, leave_type, date(2026, 3, 13), date(2026, 3, 13))
    assert leave.total_days == 1


async def test_rejected_application_frees_the_dates(db, employee, manager):
    leave_type = await _leave_type(db)
    first = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    await LeaveService.reject_leave(db, first.id, manager, "Busy week")

    again = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    assert again.status == LeaveStatus.pending


async def test_overlap_across_leave_types(db, employee):
    annual = await _leave_type(db)
    sick = await _leave_type(db, name="Sick")
    await _apply(db, employee, annual, date(2026, 3, 10), date(2026, 3, 12))
    with pytest.raises(ConflictError):
        await _apply(db, employee, sick, date(2026, 3, 11), date(2026, 3, 11))


async def test_past_start_date_is_rejected(db, employee):
    leave_type = await _leave_type(db)
    with pytest.raises(ValidationException) as exc_info:
        await _apply(db, employee, leave_type, date(2026, 3, 1), date(2026, 3, 3))
    assert "start_date" in exc_info.value.errors


async def test_notice_period_enforced(db, employee):
    leave_type = await _leave_type(db, min_days_notice=7)
    with pytest.raises(ValidationException):
        await _apply(db, employee, leave_type, date(2026, 3, 5), date(2026, 3, 5))
    leave = await _apply(db, employee, leave_type, date(2026, 3, 9), date(2026, 3, 9))
    assert leave.status == LeaveStatus.pending


async def test_consecutive_days_enforced(db, employee):
    leave_type = await _leave_type(db, max_consecutive_days=3)
    with pytest.raises(ValidationException) as exc_info:
        await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 13))
    assert "end_date" in exc_info.value.errors


async def test_insufficient_balance(db, employee):
    leave_type = await _leave_type(db, days_allowed=3)
    await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 11))
    with pytest.raises(ValidationException) as exc_info:
        await _apply(db, employee, leave_type, date(2026, 4, 1), date(2026, 4, 2))
    assert "leave_type_id" in exc_info.value.errors


async def test_type_without_approval_is_auto_approved(db, employee):
    leave_type = await _leave_type(db, name="Comp Off", requires_approval=False)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 10))
    assert leave.status == LeaveStatus.approved
    assert leave.approved_at is not None


async def test_inactive_leave_type_is_rejected(db, employee):
    leave_type = await _leave_type(db)
    await LeaveTypeService.update_leave_type(
        db, leave_type.id, LeaveTypeUpdate(is_active=False), "ACME",
    )
    with pytest.raises(ValidationException):
        await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 10))


async def test_inactive_employee_cannot_apply(db, org):
    leave_type = await _leave_type(db)
    user = await make_user(db, status=UserStatus.inactive)
    with pytest.raises(ValidationException):
        await _apply(db, user, leave_type, date(2026, 3, 10), date(2026, 3, 10))


def test_apply_schema_rejects_inverted_dates():
    with pytest.raises(ValueError):
        LeaveApplyRequest(
            leave_type_id="00000000-0000-0000-0000-000000000001",
            start_date=date(2026, 3, 12),
            end_date=date(2026, 3, 10),
            reason="x",
        )


# ═════════════════════════════════════════════════════════════════════
# 3. DECISIONS
# ═════════════════════════════════════════════════════════════════════


async def test_manager_approves_employee_leave(db, employee, manager):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))

    approved = await LeaveService.approve_leave(db, leave.id, manager)
    assert approved.status == LeaveStatus.approved
    assert approved.approved_by == manager.id

    with pytest.raises(ValidationException):
        await LeaveService.approve_leave(db, leave.id, manager)


async def test_self_approval_is_forbidden(db, hr_user):
    leave_type = await _leave_type(db)
    leave = await _apply(db, hr_user, leave_type, date(2026, 3, 10), date(2026, 3, 10))
    with pytest.raises(ForbiddenException):
        await LeaveService.approve_leave(db, leave.id, hr_user)


async def test_peer_cannot_approve(db, employee, manager):
    peer = await make_user(db, role=RoleLevel.MANAGER)
    leave_type = await _leave_type(db)
    leave = await _apply(db, manager, leave_type, date(2026, 3, 10), date(2026, 3, 10))

    with pytest.raises(ForbiddenException):
        await LeaveService.approve_leave(db, leave.id, peer)
    with pytest.raises(ForbiddenException):
        await LeaveService.approve_leave(db, leave.id, employee)


async def test_super_admin_can_approve_anyone(db, admin):
    root = await make_user(db, role=RoleLevel.SUPER_ADMIN)
    leave_type = await _leave_type(db)
    leave = await _apply(db, admin, leave_type, date(2026, 3, 10), date(2026, 3, 10))

    approved = await LeaveService.approve_leave(db, leave.id, root)
    assert approved.status == LeaveStatus.approved


async def test_reject_requires_reason(db, employee, manager):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 10))

    with pytest.raises(ValidationException):
        await LeaveService.reject_leave(db, leave.id, manager, "   ")

    rejected = await LeaveService.reject_leave(db, leave.id, manager, " Team offsite ")
    assert rejected.status == LeaveStatus.rejected
    assert rejected.rejection_reason == "Team offsite"
    assert rejected.rejected_by == manager.id


async def test_approval_chain_lists_seniors(db, employee, manager, hr_user, admin):
    await make_user(db, role=RoleLevel.HR, status=UserStatus.inactive)
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 10))

    chain = await LeaveService.get_approval_chain(db, leave.id, "ACME")
    assert [u.user_id for u in chain] == [admin.id, hr_user.id, manager.id]


# ═════════════════════════════════════════════════════════════════════
# 4. CANCEL / BALANCE
# ═════════════════════════════════════════════════════════════════════


async def test_applicant_cancels_future_leave(db, employee, manager):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    await LeaveService.approve_leave(db, leave.id, manager)

    cancelled = await LeaveService.cancel_leave(db, leave.id, employee, today=TODAY)
    assert cancelled.status == LeaveStatus.cancelled
    assert cancelled.cancelled_at is not None


async def test_leave_past_its_start_date_cannot_be_cancelled(db, employee):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    with pytest.raises(ValidationException) as exc_info:
        await LeaveService.cancel_leave(db, leave.id, employee, today=date(2026, 3, 11))
    assert exc_info.value.errors["start_date"] == [
        "Leave whose start date has passed cannot be cancelled."
    ]


async def test_leave_can_be_cancelled_on_its_start_date(db, employee):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    cancelled = await LeaveService.cancel_leave(db, leave.id, employee, today=date(2026, 3, 10))
    assert cancelled.status == LeaveStatus.cancelled


async def test_rejected_leave_cannot_be_cancelled(db, employee, manager):
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    await LeaveService.reject_leave(db, leave.id, manager, "No")
    with pytest.raises(ValidationException):
        await LeaveService.cancel_leave(db, leave.id, employee, today=TODAY)


async def test_colleague_cannot_cancel(db, employee):
    colleague = await make_user(db)
    leave_type = await _leave_type(db)
    leave = await _apply(db, employee, leave_type, date(2026, 3, 10), date(2026, 3, 12))
    with pytest.raises(ForbiddenException):
        await LeaveService.cancel_leave(db, leave.id, colleague, today=TODAY)


async def test_balance_counts_used_and_pending(db, employee, manager):
    annual = await _leave_type(db, days_allowed=12)
    await _leave_type(db, name="Sick", days_allowed=6)

    approved = await _apply(db, employee, annual, date(2026, 3, 10), date(2026, 3, 12))
    await LeaveService.approve_leave(db, approved.id, manager)
    await _apply(db, employee, annual, date(2026, 4, 6), date(2026, 4, 7))

    balance = await LeaveService.get_leave_balance(db, employee.id, "ACME", 2026)
    by_name = {b.leave_type_name: b for b in balance.balances}
    assert by_name["Annual"].used == 3
    assert by_name["Annual"].pending == 2
    assert by_name["Annual"].available == 7
    assert by_name["Sick"].available == 6


# ═════════════════════════════════════════════════════════════════════
# 5. HTTP
# ═════════════════════════════════════════════════════════════════════


async def test_http_leave_flow(client, db, employee, employee_headers, hr_headers):
    resp = await client.post(
        "/api/v1/leave/types",
        json={"name": "Annual", "days_allowed": 12},
        headers=hr_headers,
    )
    assert resp.status_code == 201, resp.text
    leave_type_id = resp.json()["id"]

    start = date.today() + timedelta(days=14)
    body = {
        "leave_type_id": leave_type_id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(),
        "reason": "Wedding",
    }
    resp = await client.post("/api/v1/leave/apply", json=body, headers=employee_headers)
    assert resp.status_code == 201, resp.text
    leave = resp.json()
    assert leave["status"] == "pending"
    assert leave["leave_type"]["name"] == "Annual"

    resp = await client.post("/api/v1/leave/apply", json=body, headers=employee_headers)
    assert resp.status_code == 409
    assert resp.json()["type"].endswith("/conflict")

    resp = await client.get(f"/api/v1/leave/{leave['id']}/approvers", headers=employee_headers)
    assert resp.status_code == 200
    assert [u["email"] for u in resp.json()] == ["hari@acme.com"]

    resp = await client.post(f"/api/v1/leave/{leave['id']}/approve", headers=employee_headers)
    assert resp.status_code == 403

    resp = await client.post(f"/api/v1/leave/{leave['id']}/approve", headers=hr_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "approved"


async def test_http_employee_list_is_limited_to_self(client, db, employee, employee_headers):
    leave_type = await _leave_type(db)
    colleague = await make_user(db)
    start = date.today() + timedelta(days=10)
    await LeaveService.apply_leave(db, colleague, _request(leave_type, start, start))
    mine = await LeaveService.apply_leave(db, employee, _request(leave_type, start, start))
    await db.commit()

    resp = await client.get("/api/v1/leave", headers=employee_headers)
    assert resp.status_code == 200
    assert [row["id"] for row in resp.json()["data"]] == [str(mine.id)]


async def test_http_employee_cannot_create_leave_type(client, employee_headers):
    resp = await client.post(
        "/api/v1/leave/types", json={"name": "Annual", "days_allowed": 12}, headers=employee_headers,
    )
    assert resp.status_code == 403


async def test_http_balance_of_colleague_needs_permission(client, db, employee_headers, manager):
    colleague = await make_user(db)
    await db.commit()
    resp = await client.get(
        "/api/v1/leave/balance", params={"employee_id": str(colleague.id)}, headers=employee_headers,
    )
    assert resp.status_code == 403

    headers = await auth_headers_for(db, manager)
    await db.commit()
    resp = await client.get(
        "/api/v1/leave/balance", params={"employee_id": str(colleague.id)}, headers=headers,
    )
    assert resp.status_code == 200
