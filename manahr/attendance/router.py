"""Attendance router — clock in/out, today's status, records, reports.

Self-service endpoints act on the caller. Reading another employee's
attendance needs ``employees:read``; reports need ``reports:read``.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.attendance.schemas import (
    AttendanceRecordResponse,
    AttendanceReportResponse,
    AttendanceStats,
    AttendanceUpdate,
    BulkAttendanceRequest,
    BulkAttendanceResponse,
    ClockInRequest,
    ClockInResponse,
    ClockOutRequest,
    ClockOutResponse,
    EmployeeAttendanceSummary,
    MonthlyAttendanceResponse,
    ResetTodayResponse,
    TodayStatusResponse,
)
from manahr.attendance.service import AttendanceService
from manahr.auth.dependencies import check_permission, require_permission
from manahr.common.constants import AttendanceStatus
from manahr.core_hr.models import User
from manahr.database import get_db

router = APIRouter(prefix="", tags=["attendance"])


async def _ensure_can_view(db: AsyncSession, user: User, employee_id: uuid.UUID) -> None:
    if employee_id != user.id:
        await check_permission(db, user, "employees:read")


# ── POST /clock-in ──────────────────────────────────────────────────

@router.post("/clock-in", response_model=ClockInResponse)
async def clock_in(
    body: ClockInRequest,
    request: Request,
    user: User = Depends(require_permission("attendance:create")),
    db: AsyncSession = Depends(get_db),
):
    """Open (or reopen) today's session for the current user."""
    ip = request.client.host if request.client else None
    return await AttendanceService.clock_in(
        db, user, notes=body.notes, status=body.status, ip_address=ip,
    )


# ── PUT /clock-out ──────────────────────────────────────────────────

@router.put("/clock-out", response_model=ClockOutResponse)
async def clock_out(
    body: ClockOutRequest,
    request: Request,
    user: User = Depends(require_permission("attendance:create")),
    db: AsyncSession = Depends(get_db),
):
    ip = request.client.host if request.client else None
    return await AttendanceService.clock_out(db, user, notes=body.notes, ip_address=ip)


# ── GET /status ─────────────────────────────────────────────────────

@router.get("/status", response_model=TodayStatusResponse)
async def today_status(
    user: User = Depends(require_permission("attendance:read")),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_today_status(db, user.id, user.organization_code)


# ── DELETE /reset-today ─────────────────────────────────────────────

@router.delete("/reset-today", response_model=ResetTodayResponse)
async def reset_today(
    user: User = Depends(require_permission("attendance:create")),
    db: AsyncSession = Depends(get_db),
):
    """Discard all of today's sessions for the current user."""
    return await AttendanceService.reset_today(db, user.id, user.organization_code)


# ── GET / (report) ──────────────────────────────────────────────────

@router.get("", response_model=AttendanceReportResponse)
async def attendance_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[AttendanceStatus] = Query(None),
    user: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_attendance_report(
        db,
        user.organization_code,
        start_date,
        end_date,
        employee_id=employee_id,
        status=status,
    )


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=AttendanceStats)
async def attendance_stats(
    user: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_attendance_stats(db, user.organization_code)


# ── GET /daily/{day} ────────────────────────────────────────────────

@router.get("/daily/{day}", response_model=list[AttendanceRecordResponse])
async def daily_attendance(
    day: date,
    user: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    records = await AttendanceService.get_daily_attendance(db, day, user.organization_code)
    return [AttendanceService.to_response(r) for r in records]


# ── GET /monthly/{employee_id}/{year}/{month} ───────────────────────

@router.get(
    "/monthly/{employee_id}/{year}/{month}",
    response_model=MonthlyAttendanceResponse,
)
async def monthly_attendance(
    employee_id: uuid.UUID,
    year: int,
    month: int,
    user: User = Depends(require_permission("attendance:read")),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_can_view(db, user, employee_id)
    return await AttendanceService.get_monthly_attendance(
        db, employee_id, year, month, user.organization_code,
    )


# ── GET /summary/{employee_id} ──────────────────────────────────────

@router.get("/summary/{employee_id}", response_model=EmployeeAttendanceSummary)
async def employee_summary(
    employee_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    user: User = Depends(require_permission("attendance:read")),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_can_view(db, user, employee_id)
    return await AttendanceService.get_employee_attendance_summary(
        db, employee_id, user.organization_code, year, month,
    )


# ── POST /bulk ──────────────────────────────────────────────────────

@router.post("/bulk", response_model=BulkAttendanceResponse, status_code=201)
async def bulk_mark(
    body: BulkAttendanceRequest,
    user: User = Depends(require_permission("attendance:import")),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.bulk_mark_attendance(
        db, body.records, user.organization_code, actor_id=user.id,
    )


# ── /{record_id} ────────────────────────────────────────────────────

@router.get("/{record_id}", response_model=AttendanceRecordResponse)
async def get_record(
    record_id: uuid.UUID,
    user: User = Depends(require_permission("attendance:read")),
    db: AsyncSession = Depends(get_db),
):
    record = await AttendanceService.get_attendance_by_id(db, record_id, user.organization_code)
    await _ensure_can_view(db, user, record.employee_id)
    return AttendanceService.to_response(record)


@router.put("/{record_id}", response_model=AttendanceRecordResponse)
async def update_record(
    record_id: uuid.UUID,
    body: AttendanceUpdate,
    user: User = Depends(require_permission("attendance:update")),
    db: AsyncSession = Depends(get_db),
):
    record = await AttendanceService.update_attendance(
        db, record_id, body, user.organization_code, actor_id=user.id,
    )
    return AttendanceService.to_response(record)


@router.delete("/{record_id}", status_code=204)
async def delete_record(
    record_id: uuid.UUID,
    user: User = Depends(require_permission("attendance:delete")),
    db: AsyncSession = Depends(get_db),
):
    await AttendanceService.delete_attendance(
        db, record_id, user.organization_code, actor_id=user.id,
    )
