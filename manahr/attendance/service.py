"""Attendance service layer — clock sessions, daily status, aggregates.

Business logic:
  - One record per employee per local calendar day; clocking in again on a
    closed day reopens the record and keeps the first check-in
  - Daily hours are the span from the first check-in to the latest check-out
  - Arrival status from the organization's work start + late threshold
  - Optimistic locking on the ``version`` column; lost updates become 409
  - Reports, per-employee summaries and organization stats
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from manahr.attendance.models import AttendanceRecord
from manahr.attendance.schemas import (
    AttendanceCreate,
    AttendanceRecordResponse,
    AttendanceReportResponse,
    AttendanceStats,
    AttendanceUpdate,
    BulkAttendanceResponse,
    BulkFailure,
    ClockInResponse,
    ClockOutResponse,
    DailySummary,
    EmployeeAttendanceSummary,
    MonthlyAttendanceResponse,
    MonthStats,
    ResetTodayResponse,
    SessionItem,
    StatusCounts,
    TodayStats,
    TodayStatusResponse,
)
from manahr.common.audit import create_audit_entry
from manahr.common.constants import (
    NOTES_MAX_LENGTH,
    AttendanceStatus,
    ClockState,
    RoleLevel,
    UserStatus,
)
from manahr.common.datetime_utils import (
    ensure_utc,
    get_zone,
    hours_between,
    local_date,
    utcnow,
)
from manahr.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundException,
    ValidationException,
)
from manahr.common.tenancy import TenantScope
from manahr.config import settings
from manahr.core_hr.models import Organization, User
from manahr.core_hr.schemas import UserBrief
from manahr.core_hr.service import OrganizationService, UserService

logger = logging.getLogger(__name__)

# Weight of each status when counting attended days
_ATTENDED_WEIGHT = {
    AttendanceStatus.present: 1.0,
    AttendanceStatus.late: 1.0,
    AttendanceStatus.work_from_home: 1.0,
    AttendanceStatus.half_day: 0.5,
    AttendanceStatus.absent: 0.0,
}


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async attendance operations: clock sessions, corrections, reporting."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def to_response(record: AttendanceRecord) -> AttendanceRecordResponse:
        response = AttendanceRecordResponse.model_validate(record)
        response.check_in = ensure_utc(record.check_in)
        response.check_out = ensure_utc(record.check_out)
        return response

    @staticmethod
    async def _organization(
        db: AsyncSession, organization_code: str,
    ) -> Optional[Organization]:
        return await OrganizationService.get_by_code(db, organization_code)

    @staticmethod
    def _timezone(org: Optional[Organization]) -> str:
        return org.timezone if org is not None and org.timezone else settings.DEFAULT_TIMEZONE

    @staticmethod
    def _arrival_status(check_in: datetime, org: Optional[Organization]) -> AttendanceStatus:
        """``late`` when the local check-in is past work start + threshold."""
        if org is None or org.work_start_time is None:
            return AttendanceStatus.present
        zone = get_zone(org.timezone)
        local = ensure_utc(check_in).astimezone(zone)
        start = datetime.combine(local.date(), org.work_start_time, tzinfo=zone)
        cutoff = start + timedelta(minutes=settings.LATE_THRESHOLD_MINUTES)
        return AttendanceStatus.late if local > cutoff else AttendanceStatus.present

    @staticmethod
    def _closing_status(status: AttendanceStatus, hours: float) -> AttendanceStatus:
        if status in (
            AttendanceStatus.work_from_home,
            AttendanceStatus.late,
            AttendanceStatus.absent,
        ):
            return status
        # A reopened half day becomes present again once the span is long enough
        if hours < settings.HALF_DAY_HOURS:
            return AttendanceStatus.half_day
        return AttendanceStatus.present

    @staticmethod
    def _append_note(existing: Optional[str], note: str) -> str:
        text = f"{existing} | {note}" if existing else note
        return text[:NOTES_MAX_LENGTH]

    @staticmethod
    async def _flush(db: AsyncSession, record: AttendanceRecord) -> None:
        record_id = record.id
        try:
            await db.flush()
        except StaleDataError:
            logger.warning("Concurrent update on attendance record %s", record_id)
            raise ConflictError(
                "version",
                record_id,
                "The attendance record was modified by another request. Reload and retry.",
            )

    @staticmethod
    async def _get_employee(
        db: AsyncSession, employee_id: uuid.UUID, organization_code: str,
    ) -> User:
        employee = await TenantScope(db, organization_code).get(User, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _day_records(
        db: AsyncSession, employee_id: uuid.UUID, day: date,
    ) -> list[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == day,
            )
            .order_by(AttendanceRecord.check_in.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    def _validate_range(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise ValidationException(
                {"date_range": ["start_date must be before or equal to end_date."]}
            )
        if (end_date - start_date).days > settings.MAX_DATE_RANGE_DAYS:
            raise ValidationException(
                {"date_range": [
                    f"Date range cannot exceed {settings.MAX_DATE_RANGE_DAYS} days."
                ]}
            )

    @staticmethod
    def _month_bounds(year: int, month: int) -> tuple[date, date]:
        if not 1 <= month <= 12:
            raise ValidationException({"month": ["Month must be between 1 and 12."]})
        last = calendar.monthrange(year, month)[1]
        return date(year, month, 1), date(year, month, last)

    @staticmethod
    def _count_statuses(records: Iterable[AttendanceRecord]) -> StatusCounts:
        counts = StatusCounts()
        for r in records:
            counts.total_records += 1
            if r.status == AttendanceStatus.present:
                counts.present_count += 1
            elif r.status == AttendanceStatus.absent:
                counts.absent_count += 1
            elif r.status == AttendanceStatus.late:
                counts.late_count += 1
            elif r.status == AttendanceStatus.half_day:
                counts.half_day_count += 1
            elif r.status == AttendanceStatus.work_from_home:
                counts.wfh_count += 1
        return counts

    @staticmethod
    def _build_summary(
        employee_id: uuid.UUID,
        year: int,
        month: Optional[int],
        records: Sequence[AttendanceRecord],
    ) -> EmployeeAttendanceSummary:
        """Late and work-from-home days count as present; half days count 0.5."""
        counts = AttendanceService._count_statuses(records)
        present_days = sum(_ATTENDED_WEIGHT[r.status] for r in records)
        total_hours = round(sum(r.total_hours or 0.0 for r in records), 2)
        total = counts.total_records

        return EmployeeAttendanceSummary(
            employee_id=employee_id,
            year=year,
            month=month,
            total_working_days=total,
            present_days=present_days,
            absent_days=counts.absent_count,
            late_days=counts.late_count,
            half_days=counts.half_day_count,
            wfh_days=counts.wfh_count,
            attendance_percentage=round(present_days / total * 100, 2) if total else 0.0,
            total_hours=total_hours,
            average_hours=round(total_hours / present_days, 2) if present_days else 0.0,
        )

    # ── Identity ────────────────────────────────────────────────────

    @staticmethod
    async def find_user_by_id(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: Optional[str] = None,
    ) -> Optional[UserBrief]:
        return await UserService.find_user_by_id(db, user_id, organization_code)

    # ── Session engine ──────────────────────────────────────────────

    @staticmethod
    async def mark_attendance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        check_in: datetime,
        organization_code: str,
        *,
        notes: Optional[str] = None,
        status: Optional[AttendanceStatus] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[AttendanceRecord, bool]:
        """Open today's session for *employee_id*.

        Returns ``(record, is_update)``. A second clock-in on the same local
        day reopens the existing record and keeps its first ``check_in``.
        """
        employee = await AttendanceService._get_employee(db, employee_id, organization_code)
        if employee.status != UserStatus.active:
            raise ValidationException(
                {"employee_id": ["Attendance cannot be marked for an inactive employee."]}
            )

        check_in = ensure_utc(check_in)
        org = await AttendanceService._organization(db, organization_code)
        day = local_date(check_in, AttendanceService._timezone(org))
        existing = await AttendanceService._day_records(db, employee_id, day)

        if existing:
            record = existing[0]
            record.check_out = None
            record.is_logged_in = True
            if notes:
                record.notes = notes[:NOTES_MAX_LENGTH]
            if status is not None:
                record.status = status
            elif record.status == AttendanceStatus.half_day:
                # Half day is a closing verdict; an open session is back on arrival status
                record.status = AttendanceService._arrival_status(record.check_in, org)
            record.updated_by = actor_id or employee_id
            await AttendanceService._flush(db, record)
            logger.info("Reopened attendance %s for %s on %s", record.id, employee_id, day)
            return record, True

        record = AttendanceRecord(
            employee_id=employee_id,
            date=day,
            check_in=check_in,
            status=status or AttendanceService._arrival_status(check_in, org),
            notes=notes,
            is_logged_in=True,
            created_by=actor_id or employee_id,
            updated_by=actor_id or employee_id,
        )
        TenantScope(db, organization_code).add(record)
        await db.flush()
        logger.info("Opened attendance %s for %s on %s", record.id, employee_id, day)
        return record, False

    @staticmethod
    async def mark_check_out(
        db: AsyncSession,
        record_id: uuid.UUID,
        check_out: datetime,
        organization_code: str,
        *,
        notes: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AttendanceRecord:
        """Close an open session; ``total_hours`` spans first check-in to *check_out*."""
        record = await TenantScope(db, organization_code).get(AttendanceRecord, record_id)
        if record is None:
            raise NotFoundException("AttendanceRecord", str(record_id))
        if record.check_in is None:
            raise ValidationException({"check_in": ["No check-in recorded for this session."]})
        if record.check_out is not None:
            raise ValidationException({"check_out": ["Already checked out."]})

        check_out = ensure_utc(check_out)
        check_in = ensure_utc(record.check_in)
        if check_out <= check_in:
            raise ValidationException(
                {"check_out": ["Check-out time must be after check-in time."]}
            )

        hours = hours_between(check_in, check_out)
        record.check_out = check_out
        record.total_hours = hours
        record.is_logged_in = False
        record.status = AttendanceService._closing_status(record.status, hours)
        if notes:
            record.notes = AttendanceService._append_note(record.notes, f"Checkout: {notes}")
        record.updated_by = actor_id or record.employee_id
        await AttendanceService._flush(db, record)
        return record

    @staticmethod
    async def clock_in(
        db: AsyncSession,
        user: User,
        *,
        notes: Optional[str] = None,
        status: Optional[AttendanceStatus] = None,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> ClockInResponse:
        """Self-service clock-in for the authenticated user."""
        if status is not None and status != AttendanceStatus.work_from_home:
            raise ValidationException(
                {"status": ["Only work_from_home may be requested at clock-in."]}
            )
        now = now or utcnow()
        record, is_update = await AttendanceService.mark_attendance(
            db,
            user.id,
            now,
            user.organization_code,
            notes=notes,
            status=status,
            actor_id=user.id,
        )

        await create_audit_entry(
            db,
            action="clock_in",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=user.id,
            organization_code=user.organization_code,
            new_values={
                "timestamp": now.isoformat(),
                "is_update": is_update,
                "status": record.status.value,
            },
            ip_address=ip_address,
        )

        return ClockInResponse(
            session_id=record.id,
            check_in=ensure_utc(record.check_in),
            date=record.date,
            status=record.status,
            notes=record.notes,
            is_update=is_update,
            is_logged_in=record.is_logged_in,
        )

    @staticmethod
    async def clock_out(
        db: AsyncSession,
        user: User,
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> ClockOutResponse:
        """Self-service clock-out; closes today's open session."""
        now = now or utcnow()
        org = await AttendanceService._organization(db, user.organization_code)
        today = local_date(now, AttendanceService._timezone(org))

        open_records = [
            r for r in await AttendanceService._day_records(db, user.id, today) if r.is_open
        ]
        if not open_records:
            raise ValidationException(
                {"clock_out": ["No active session found for today. Please clock in first."]}
            )

        record = await AttendanceService.mark_check_out(
            db,
            open_records[-1].id,
            now,
            user.organization_code,
            notes=notes,
            actor_id=user.id,
        )

        await create_audit_entry(
            db,
            action="clock_out",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=user.id,
            organization_code=user.organization_code,
            new_values={
                "timestamp": now.isoformat(),
                "total_hours": record.total_hours,
                "status": record.status.value,
            },
            ip_address=ip_address,
        )

        return ClockOutResponse(
            session_id=record.id,
            first_clock_in=ensure_utc(record.check_in),
            last_clock_out=ensure_utc(record.check_out),
            total_hours_today=record.total_hours,
            status=record.status,
            is_logged_in=record.is_logged_in,
        )

    @staticmethod
    async def get_today_status(
        db: AsyncSession,
        employee_id: uuid.UUID,
        organization_code: str,
        *,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> TodayStatusResponse:
        """Clock state and hours for the local day.

        ``completed_hours`` is what was locked in at the last clock-out;
        ``current_session_hours`` is the time since, for an open session.
        Their sum is the first-check-in-to-now span.
        """
        now = ensure_utc(now or utcnow())
        if today is None:
            org = await AttendanceService._organization(db, organization_code)
            today = local_date(now, AttendanceService._timezone(org))
        records = await AttendanceService._day_records(db, employee_id, today)

        sessions: list[SessionItem] = []
        completed = current = 0.0
        for r in records:
            stored = r.total_hours or 0.0
            completed += stored
            if r.is_open:
                current += max(0.0, hours_between(r.check_in, now) - stored)
            sessions.append(
                SessionItem(
                    session_id=r.id,
                    check_in=ensure_utc(r.check_in),
                    check_out=ensure_utc(r.check_out),
                    total_hours=r.total_hours,
                    status=r.status,
                    is_active=r.is_open,
                    notes=r.notes,
                )
            )

        active = any(s.is_active for s in sessions)
        if not sessions:
            state = ClockState.not_started
        elif active:
            state = ClockState.clocked_in
        else:
            state = ClockState.available

        return TodayStatusResponse(
            date=today,
            status=state,
            can_clock_in=not active,
            can_clock_out=active,
            sessions=sessions,
            daily_summary=DailySummary(
                total_hours=round(completed + current, 2),
                completed_hours=round(completed, 2),
                current_session_hours=round(current, 2),
                sessions_count=len(sessions),
                completed_sessions=sum(1 for s in sessions if not s.is_active),
                active_session=active,
            ),
        )

    @staticmethod
    async def reset_today(
        db: AsyncSession,
        employee_id: uuid.UUID,
        organization_code: str,
        *,
        today: Optional[date] = None,
    ) -> ResetTodayResponse:
        """Delete every record of the local day for *employee_id*."""
        if today is None:
            org = await AttendanceService._organization(db, organization_code)
            today = local_date(utcnow(), AttendanceService._timezone(org))
        records = await AttendanceService._day_records(db, employee_id, today)
        deleted_ids = [r.id for r in records]
        for r in records:
            await db.delete(r)
        await db.flush()

        if deleted_ids:
            await create_audit_entry(
                db,
                action="reset_today",
                entity_type="attendance_record",
                entity_id=deleted_ids[0],
                actor_id=employee_id,
                organization_code=organization_code,
                old_values={"date": today.isoformat(), "ids": [str(i) for i in deleted_ids]},
            )
        logger.info("Reset %d attendance record(s) for %s on %s", len(deleted_ids), employee_id, today)
        return ResetTodayResponse(
            date=today, deleted_count=len(deleted_ids), deleted_ids=deleted_ids,
        )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_attendance_by_id(
        db: AsyncSession, record_id: uuid.UUID, organization_code: str,
    ) -> AttendanceRecord:
        record = await TenantScope(db, organization_code).get(AttendanceRecord, record_id)
        if record is None:
            raise NotFoundException("AttendanceRecord", str(record_id))
        return record

    @staticmethod
    async def get_daily_attendance(
        db: AsyncSession, day: date, organization_code: str,
    ) -> list[AttendanceRecord]:
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(AttendanceRecord)
            .where(AttendanceRecord.date == day)
            .order_by(AttendanceRecord.check_in.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_employee_attendance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        organization_code: str,
    ) -> list[AttendanceRecord]:
        """Records for one employee in ``[start_date, end_date]``, newest first."""
        AttendanceService._validate_range(start_date, end_date)
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date >= start_date,
                AttendanceRecord.date <= end_date,
            )
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.check_in.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_monthly_attendance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        month: int,
        organization_code: str,
    ) -> MonthlyAttendanceResponse:
        await AttendanceService._get_employee(db, employee_id, organization_code)
        start, end = AttendanceService._month_bounds(year, month)
        records = await AttendanceService.get_employee_attendance(
            db, employee_id, start, end, organization_code,
        )
        return MonthlyAttendanceResponse(
            employee_id=employee_id,
            year=year,
            month=month,
            records=[AttendanceService.to_response(r) for r in records],
            summary=AttendanceService._build_summary(employee_id, year, month, records),
        )

    # ── Corrections ─────────────────────────────────────────────────

    @staticmethod
    async def update_attendance(
        db: AsyncSession,
        record_id: uuid.UUID,
        data: AttendanceUpdate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AttendanceRecord:
        """Administrative correction. Recomputes hours when times change."""
        record = await AttendanceService.get_attendance_by_id(db, record_id, organization_code)
        if data.version is not None and data.version != record.version:
            raise ConflictError(
                "version",
                data.version,
                f"Record is at version {record.version}; reload and retry.",
            )

        changes = data.model_dump(exclude_unset=True, exclude={"version"})
        old_values = {
            k: (v.isoformat() if isinstance(v, (date, datetime)) else v)
            for k, v in ((k, getattr(record, k)) for k in changes)
        }

        check_in = ensure_utc(changes.get("check_in", record.check_in))
        check_out = ensure_utc(changes.get("check_out", record.check_out))
        if check_out is not None and check_out <= check_in:
            raise ValidationException(
                {"check_out": ["Check-out time must be after check-in time."]}
            )

        if "check_in" in changes:
            org = await AttendanceService._organization(db, organization_code)
            record.check_in = check_in
            record.date = local_date(check_in, AttendanceService._timezone(org))
        if "check_out" in changes:
            record.check_out = check_out
        if "notes" in changes:
            record.notes = changes["notes"]

        if check_out is not None:
            record.total_hours = hours_between(check_in, check_out)
            record.is_logged_in = False
        else:
            record.total_hours = None
            record.is_logged_in = True

        if changes.get("status") is not None:
            record.status = changes["status"]
        elif check_out is not None and ("check_in" in changes or "check_out" in changes):
            record.status = AttendanceService._closing_status(record.status, record.total_hours)

        record.updated_by = actor_id
        await AttendanceService._flush(db, record)

        await create_audit_entry(
            db,
            action="update",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=old_values,
            new_values={
                k: (v.isoformat() if isinstance(v, (date, datetime)) else v)
                for k, v in changes.items()
            },
        )
        return record

    @staticmethod
    async def delete_attendance(
        db: AsyncSession,
        record_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        record = await AttendanceService.get_attendance_by_id(db, record_id, organization_code)
        snapshot = {
            "employee_id": str(record.employee_id),
            "date": record.date.isoformat(),
            "status": record.status.value,
        }
        await db.delete(record)
        await AttendanceService._flush(db, record)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="attendance_record",
            entity_id=record_id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=snapshot,
        )

    @staticmethod
    async def bulk_mark_attendance(
        db: AsyncSession,
        rows: Sequence[AttendanceCreate],
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> BulkAttendanceResponse:
        """Mark many rows; failures are collected. Raises only if every row fails."""
        created: list[AttendanceRecordResponse] = []
        failed: list[BulkFailure] = []

        for index, row in enumerate(rows):
            try:
                record, _ = await AttendanceService.mark_attendance(
                    db,
                    row.employee_id,
                    row.check_in,
                    organization_code,
                    notes=row.notes,
                    status=row.status,
                    actor_id=actor_id,
                )
                if row.check_out is not None:
                    record = await AttendanceService.mark_check_out(
                        db, record.id, row.check_out, organization_code, actor_id=actor_id,
                    )
                    if row.status is not None:
                        record.status = row.status
                        await AttendanceService._flush(db, record)
                created.append(AttendanceService.to_response(record))
            except AppException as exc:
                failed.append(
                    BulkFailure(index=index, employee_id=row.employee_id, error=exc.detail)
                )

        if not created:
            raise ValidationException({"records": [f.error for f in failed]})

        logger.info(
            "Bulk attendance for %s: %d marked, %d failed",
            organization_code, len(created), len(failed),
        )
        return BulkAttendanceResponse(created=created, failed=failed)

    # ── Aggregates ──────────────────────────────────────────────────

    @staticmethod
    async def get_attendance_report(
        db: AsyncSession,
        organization_code: str,
        start_date: date,
        end_date: date,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[AttendanceStatus] = None,
    ) -> AttendanceReportResponse:
        AttendanceService._validate_range(start_date, end_date)
        query = (
            TenantScope(db, organization_code)
            .select(AttendanceRecord)
            .where(
                AttendanceRecord.date >= start_date,
                AttendanceRecord.date <= end_date,
            )
        )
        if employee_id is not None:
            query = query.where(AttendanceRecord.employee_id == employee_id)
        if status is not None:
            query = query.where(AttendanceRecord.status == status)
        query = query.order_by(AttendanceRecord.date.desc(), AttendanceRecord.check_in.asc())

        records = list((await db.execute(query)).scalars().all())
        return AttendanceReportResponse(
            start_date=start_date,
            end_date=end_date,
            records=[AttendanceService.to_response(r) for r in records],
            summary=AttendanceService._count_statuses(records),
        )

    @staticmethod
    async def get_employee_attendance_summary(
        db: AsyncSession,
        employee_id: uuid.UUID,
        organization_code: str,
        year: int,
        month: Optional[int] = None,
    ) -> EmployeeAttendanceSummary:
        """Attendance summary for one month, or the whole year when *month* is None."""
        await AttendanceService._get_employee(db, employee_id, organization_code)
        if month is not None:
            start, end = AttendanceService._month_bounds(year, month)
        else:
            start, end = date(year, 1, 1), date(year, 12, 31)

        result = await db.execute(
            TenantScope(db, organization_code)
            .select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end,
            )
        )
        records = list(result.scalars().all())
        return AttendanceService._build_summary(employee_id, year, month, records)

    @staticmethod
    async def get_attendance_stats(
        db: AsyncSession,
        organization_code: str,
        *,
        today: Optional[date] = None,
    ) -> AttendanceStats:
        """Today's status counts and this month's attendance average."""
        if today is None:
            org = await AttendanceService._organization(db, organization_code)
            today = local_date(utcnow(), AttendanceService._timezone(org))
        scope = TenantScope(db, organization_code)

        total_employees = (
            await db.execute(
                scope.filter(select(func.count(User.id)), User).where(
                    User.status == UserStatus.active,
                    User.employee_code.is_not(None),
                    User.role >= int(RoleLevel.HR),
                )
            )
        ).scalar_one()

        today_records = await AttendanceService.get_daily_attendance(
            db, today, organization_code,
        )
        counts = AttendanceService._count_statuses(today_records)
        marked = len({r.employee_id for r in today_records})

        month_result = await db.execute(
            scope.select(AttendanceRecord).where(
                AttendanceRecord.date >= today.replace(day=1),
                AttendanceRecord.date <= today,
            )
        )
        month_records = list(month_result.scalars().all())
        attended = sum(_ATTENDED_WEIGHT[r.status] for r in month_records)
        with_hours = [r.total_hours for r in month_records if r.total_hours is not None]

        return AttendanceStats(
            date=today,
            total_employees=total_employees,
            today=TodayStats(
                present=counts.present_count,
                absent=counts.absent_count,
                late=counts.late_count,
                half_day=counts.half_day_count,
                work_from_home=counts.wfh_count,
                clocked_in_now=sum(1 for r in today_records if r.is_open),
                not_marked=max(0, total_employees - marked),
            ),
            this_month=MonthStats(
                total_records=len(month_records),
                attended_days=attended,
                average_attendance=(
                    round(attended / len(month_records) * 100, 2) if month_records else 0.0
                ),
                average_hours=(
                    round(sum(with_hours) / len(with_hours), 2) if with_hours else 0.0
                ),
            ),
        )
