"""Payroll router — generation, listing, corrections and lifecycle."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth.dependencies import check_permission, has_permission, require_permission
from manahr.common.constants import PayrollStatus
from manahr.common.pagination import PaginatedResponse, PaginationParams
from manahr.core_hr.models import User
from manahr.database import get_db
from manahr.payroll.schemas import (
    MonthlyPayrollRequest,
    MonthlyPayrollResponse,
    PayrollGenerateRequest,
    PayrollListFilters,
    PayrollResponse,
    PayrollStats,
    PayrollStatusUpdate,
    PayrollUpdate,
)
from manahr.payroll.service import PayrollService

router = APIRouter(prefix="", tags=["payroll"])


@router.post("/generate", response_model=PayrollResponse, status_code=201)
async def generate_payroll(
    body: PayrollGenerateRequest,
    user: User = Depends(require_permission("payroll:create")),
    db: AsyncSession = Depends(get_db),
):
    record = await PayrollService.generate_payroll(
        db, body, user.organization_code, actor_id=user.id,
    )
    return PayrollService.to_response(record)


@router.post("/generate-monthly", response_model=MonthlyPayrollResponse, status_code=201)
async def generate_monthly_payroll(
    body: MonthlyPayrollRequest,
    user: User = Depends(require_permission("payroll:create")),
    db: AsyncSession = Depends(get_db),
):
    return await PayrollService.generate_monthly_payroll(
        db, body.month, body.year, user.organization_code, actor_id=user.id,
    )


@router.get("", response_model=PaginatedResponse[PayrollResponse])
async def list_payrolls(
    employee_id: Optional[uuid.UUID] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    status: Optional[PayrollStatus] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(require_permission("payroll:read")),
    db: AsyncSession = Depends(get_db),
):
    """Without ``employees:read`` the list is limited to the caller's own payslips."""
    if not await has_permission(db, user, "employees:read"):
        employee_id = user.id
    return await PayrollService.get_all_payrolls(
        db,
        user.organization_code,
        params,
        PayrollListFilters(employee_id=employee_id, month=month, year=year, status=status),
    )


@router.get("/stats", response_model=PayrollStats)
async def payroll_stats(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    return await PayrollService.get_payroll_stats(
        db, user.organization_code, month=month, year=year,
    )


@router.get("/{payroll_id}", response_model=PayrollResponse)
async def get_payroll(
    payroll_id: uuid.UUID,
    user: User = Depends(require_permission("payroll:read")),
    db: AsyncSession = Depends(get_db),
):
    record = await PayrollService.get_payroll_by_id(db, payroll_id, user.organization_code)
    if record.employee_id != user.id:
        await check_permission(db, user, "employees:read")
    return PayrollService.to_response(record)


@router.put("/{payroll_id}", response_model=PayrollResponse)
async def update_payroll(
    payroll_id: uuid.UUID,
    body: PayrollUpdate,
    user: User = Depends(require_permission("payroll:update")),
    db: AsyncSession = Depends(get_db),
):
    record = await PayrollService.update_payroll(
        db, payroll_id, body, user.organization_code, actor_id=user.id,
    )
    return PayrollService.to_response(record)


@router.patch("/{payroll_id}/status", response_model=PayrollResponse)
async def update_payroll_status(
    payroll_id: uuid.UUID,
    body: PayrollStatusUpdate,
    user: User = Depends(require_permission("payroll:approve")),
    db: AsyncSession = Depends(get_db),
):
    record = await PayrollService.update_payroll_status(
        db, payroll_id, body.status, user.organization_code, actor_id=user.id,
    )
    return PayrollService.to_response(record)


@router.delete("/{payroll_id}", status_code=204)
async def delete_payroll(
    payroll_id: uuid.UUID,
    user: User = Depends(require_permission("payroll:delete")),
    db: AsyncSession = Depends(get_db),
):
    await PayrollService.delete_payroll(
        db, payroll_id, user.organization_code, actor_id=user.id,
    )
