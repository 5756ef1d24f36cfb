"""Leave router — leave types, applications, approvals, balances."""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth.dependencies import check_permission, has_permission, require_permission
from manahr.common.constants import LeaveStatus
from manahr.common.pagination import PaginatedResponse, PaginationParams
from manahr.core_hr.models import User
from manahr.core_hr.schemas import UserBrief
from manahr.database import get_db
from manahr.leave.schemas import (
    LeaveApplicationResponse,
    LeaveApplyRequest,
    LeaveBalanceResponse,
    LeaveListFilters,
    LeaveRejectRequest,
    LeaveTypeCreate,
    LeaveTypeResponse,
    LeaveTypeUpdate,
)
from manahr.leave.service import LeaveService, LeaveTypeService

router = APIRouter(prefix="", tags=["leave"])


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


@router.get("/types", response_model=list[LeaveTypeResponse])
async def list_leave_types(
    include_inactive: bool = Query(False),
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.get_leave_types(
        db, user.organization_code, include_inactive=include_inactive,
    )


@router.post("/types", response_model=LeaveTypeResponse, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    user: User = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.create_leave_type(
        db, body, user.organization_code, actor_id=user.id,
    )


@router.get("/types/{leave_type_id}", response_model=LeaveTypeResponse)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.get_leave_type_by_id(
        db, leave_type_id, user.organization_code,
    )


@router.put("/types/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    user: User = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.update_leave_type(
        db, leave_type_id, body, user.organization_code, actor_id=user.id,
    )


@router.delete("/types/{leave_type_id}", status_code=204)
async def delete_leave_type(
    leave_type_id: uuid.UUID,
    user: User = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    await LeaveTypeService.delete_leave_type(
        db, leave_type_id, user.organization_code, actor_id=user.id,
    )


# ═════════════════════════════════════════════════════════════════════
# Applications
# ═════════════════════════════════════════════════════════════════════


@router.post("/apply", response_model=LeaveApplicationResponse, status_code=201)
async def apply_leave(
    body: LeaveApplyRequest,
    user: User = Depends(require_permission("leave:create")),
    db: AsyncSession = Depends(get_db),
):
    leave = await LeaveService.apply_leave(db, user, body)
    return LeaveService.to_response(leave)


@router.get("", response_model=PaginatedResponse[LeaveApplicationResponse])
async def list_leave_applications(
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    """Without ``employees:read`` the list is limited to the caller's own applications."""
    if not await has_permission(db, user, "employees:read"):
        employee_id = user.id
    return await LeaveService.get_leave_applications(
        db,
        user.organization_code,
        params,
        LeaveListFilters(
            employee_id=employee_id,
            status=status,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
        ),
    )


@router.get("/balance", response_model=LeaveBalanceResponse)
async def leave_balance(
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    target = employee_id or user.id
    if target != user.id:
        await check_permission(db, user, "employees:read")
    return await LeaveService.get_leave_balance(
        db, target, user.organization_code, year or date.today().year,
    )


@router.get("/{leave_id}", response_model=LeaveApplicationResponse)
async def get_leave(
    leave_id: uuid.UUID,
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    leave = await LeaveService.get_leave_by_id(db, leave_id, user.organization_code)
    if leave.employee_id != user.id:
        await check_permission(db, user, "employees:read")
    return LeaveService.to_response(leave)


@router.post("/{leave_id}/approve", response_model=LeaveApplicationResponse)
async def approve_leave(
    leave_id: uuid.UUID,
    user: User = Depends(require_permission("leave:approve")),
    db: AsyncSession = Depends(get_db),
):
    return LeaveService.to_response(await LeaveService.approve_leave(db, leave_id, user))


@router.post("/{leave_id}/reject", response_model=LeaveApplicationResponse)
async def reject_leave(
    leave_id: uuid.UUID,
    body: LeaveRejectRequest,
    user: User = Depends(require_permission("leave:approve")),
    db: AsyncSession = Depends(get_db),
):
    return LeaveService.to_response(
        await LeaveService.reject_leave(db, leave_id, user, body.reason)
    )


@router.post("/{leave_id}/cancel", response_model=LeaveApplicationResponse)
async def cancel_leave(
    leave_id: uuid.UUID,
    user: User = Depends(require_permission("leave:create")),
    db: AsyncSession = Depends(get_db),
):
    return LeaveService.to_response(await LeaveService.cancel_leave(db, leave_id, user))


@router.get("/{leave_id}/approvers", response_model=list[UserBrief])
async def leave_approvers(
    leave_id: uuid.UUID,
    user: User = Depends(require_permission("leave:read")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_approval_chain(db, leave_id, user.organization_code)
