"""Leave service layer — leave types, applications, approvals, balances.

Business logic:
  - Leave types per organization with unique names
  - Applications checked for notice, length, overlap and yearly balance
  - Approve / reject by a user who outranks the applicant
  - Cancellation by the applicant or an outranking user before the start date
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.common.audit import create_audit_entry
from manahr.common.constants import LeaveStatus, RoleLevel, UserStatus, outranks
from manahr.common.datetime_utils import local_date, utcnow
from manahr.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from manahr.common.filters import apply_filters
from manahr.common.pagination import PaginatedResponse, PaginationParams, paginate
from manahr.common.tenancy import TenantScope
from manahr.core_hr.models import User
from manahr.core_hr.schemas import UserBrief
from manahr.core_hr.service import OrganizationService, UserService
from manahr.leave.models import LeaveApplication, LeaveType
from manahr.leave.schemas import (
    LeaveApplicationResponse,
    LeaveApplyRequest,
    LeaveBalanceItem,
    LeaveBalanceResponse,
    LeaveListFilters,
    LeaveTypeCreate,
    LeaveTypeUpdate,
)

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


# ═════════════════════════════════════════════════════════════════════
# LeaveTypeService
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeService:

    @staticmethod
    async def _name_taken(
        db: AsyncSession,
        name: str,
        organization_code: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = TenantScope(db, organization_code).filter(
            select(LeaveType.id), LeaveType,
        ).where(func.lower(LeaveType.name) == name.lower())
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        return (await db.execute(query)).first() is not None

    @staticmethod
    def _check_limits(days_allowed: int, max_consecutive_days: Optional[int]) -> None:
        if max_consecutive_days is not None and max_consecutive_days > days_allowed:
            raise ValidationException(
                {"max_consecutive_days": [
                    "Maximum consecutive days cannot exceed days allowed."
                ]}
            )

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        data: LeaveTypeCreate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        name = data.name.strip()
        if await LeaveTypeService._name_taken(db, name, organization_code):
            raise ConflictError("name", name)
        LeaveTypeService._check_limits(data.days_allowed, data.max_consecutive_days)

        leave_type = LeaveType(
            **data.model_dump(exclude={"name"}),
            name=name,
            is_active=True,
            created_by=actor_id,
            updated_by=actor_id,
        )
        TenantScope(db, organization_code).add(leave_type)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={"name": name, "days_allowed": data.days_allowed},
        )
        return leave_type

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        organization_code: str,
        *,
        include_inactive: bool = False,
    ) -> list[LeaveType]:
        query = TenantScope(db, organization_code).select(LeaveType)
        if not include_inactive:
            query = query.where(LeaveType.is_active.is_(True))
        result = await db.execute(query.order_by(LeaveType.name.asc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_leave_type_by_id(
        db: AsyncSession, leave_type_id: uuid.UUID, organization_code: str,
    ) -> LeaveType:
        leave_type = await TenantScope(db, organization_code).get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        leave_type = await LeaveTypeService.get_leave_type_by_id(
            db, leave_type_id, organization_code,
        )
        changes = data.model_dump(exclude_unset=True)

        if changes.get("name"):
            changes["name"] = changes["name"].strip()
            if await LeaveTypeService._name_taken(
                db, changes["name"], organization_code, exclude_id=leave_type.id,
            ):
                raise ConflictError("name", changes["name"])
        LeaveTypeService._check_limits(
            changes.get("days_allowed") or leave_type.days_allowed,
            changes.get("max_consecutive_days", leave_type.max_consecutive_days),
        )

        old_values = {k: getattr(leave_type, k) for k in changes}
        for field, value in changes.items():
            setattr(leave_type, field, value)
        leave_type.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=old_values,
            new_values=changes,
        )
        return leave_type

    @staticmethod
    async def delete_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Hard delete; refused while any application references the type."""
        leave_type = await LeaveTypeService.get_leave_type_by_id(
            db, leave_type_id, organization_code,
        )
        in_use = (
            await db.execute(
                select(func.count(LeaveApplication.id)).where(
                    LeaveApplication.leave_type_id == leave_type.id,
                )
            )
        ).scalar_one()
        if in_use:
            raise ConflictError(
                "leave_type_id",
                leave_type.name,
                f"Leave type '{leave_type.name}' is used by {in_use} application(s).",
            )

        name = leave_type.name
        await db.delete(leave_type)
        await db.flush()
        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_type",
            entity_id=leave_type_id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"name": name},
        )


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave application operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def to_response(leave: LeaveApplication) -> LeaveApplicationResponse:
        return LeaveApplicationResponse.model_validate(leave)

    @staticmethod
    async def _today(db: AsyncSession, organization_code: str) -> date:
        org = await OrganizationService.get_by_code(db, organization_code)
        return local_date(utcnow(), org.timezone if org else None)

    @staticmethod
    async def _days_taken(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        status: LeaveStatus,
    ) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(LeaveApplication.total_days), 0)).where(
                LeaveApplication.employee_id == employee_id,
                LeaveApplication.leave_type_id == leave_type_id,
                LeaveApplication.status == status,
                LeaveApplication.start_date >= date(year, 1, 1),
                LeaveApplication.start_date <= date(year, 12, 31),
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def _find_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> Optional[LeaveApplication]:
        result = await db.execute(
            select(LeaveApplication).where(
                LeaveApplication.employee_id == employee_id,
                LeaveApplication.status.in_(_ACTIVE_STATUSES),
                LeaveApplication.start_date <= end_date,
                LeaveApplication.end_date >= start_date,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _load_for_decision(
        db: AsyncSession,
        leave_id: uuid.UUID,
        organization_code: str,
    ) -> tuple[LeaveApplication, User]:
        leave = await LeaveService.get_leave_by_id(db, leave_id, organization_code)
        applicant = await UserService.get_user_by_id(db, leave.employee_id, organization_code)
        return leave, applicant

    @staticmethod
    def _check_authority(actor: User, applicant: User, verb: str) -> None:
        if actor.id == applicant.id:
            raise ForbiddenException(f"You cannot {verb} your own leave application.")
        if actor.role != RoleLevel.SUPER_ADMIN and not outranks(actor.role, applicant.role):
            raise ForbiddenException(
                f"Only a user senior to the applicant can {verb} this leave application."
            )

    # ── Apply ───────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee: User,
        data: LeaveApplyRequest,
        *,
        today: Optional[date] = None,
    ) -> LeaveApplication:
        """Submit a leave application for *employee*.

        Raises ConflictError when the range overlaps a pending or approved
        application, and ValidationException on notice, length or balance.
        """
        organization_code = employee.organization_code
        if employee.status != UserStatus.active:
            raise ValidationException({"employee_id": ["Employee is not active."]})

        leave_type = await LeaveTypeService.get_leave_type_by_id(
            db, data.leave_type_id, organization_code,
        )
        if not leave_type.is_active:
            raise ValidationException({"leave_type_id": ["Leave type is not active."]})

        today = today or await LeaveService._today(db, organization_code)
        if data.start_date < today:
            raise ValidationException({"start_date": ["Cannot apply for leave in the past."]})
        if (data.start_date - today).days < leave_type.min_days_notice:
            raise ValidationException(
                {"start_date": [
                    f"{leave_type.name} requires {leave_type.min_days_notice} day(s) notice."
                ]}
            )

        total_days = LeaveApplication.span_days(data.start_date, data.end_date)
        if leave_type.max_consecutive_days and total_days > leave_type.max_consecutive_days:
            raise ValidationException(
                {"end_date": [
                    f"{leave_type.name} allows at most "
                    f"{leave_type.max_consecutive_days} consecutive day(s)."
                ]}
            )

        overlap = await LeaveService._find_overlap(
            db, employee.id, data.start_date, data.end_date,
        )
        if overlap is not None:
            raise ConflictError(
                "date_range",
                f"{data.start_date}..{data.end_date}",
                f"Overlaps an existing {overlap.status.value} application "
                f"({overlap.start_date} to {overlap.end_date}).",
            )

        year = data.start_date.year
        used = await LeaveService._days_taken(
            db, employee.id, leave_type.id, year, LeaveStatus.approved,
        )
        pending = await LeaveService._days_taken(
            db, employee.id, leave_type.id, year, LeaveStatus.pending,
        )
        available = leave_type.days_allowed - used - pending
        if total_days > available:
            raise ValidationException(
                {"leave_type_id": [
                    f"Insufficient {leave_type.name} balance: "
                    f"{max(available, 0)} day(s) available, {total_days} requested."
                ]}
            )

        now = utcnow()
        leave = LeaveApplication(
            employee_id=employee.id,
            leave_type=leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            reason=data.reason.strip(),
            status=LeaveStatus.pending,
            applied_at=now,
        )
        if not leave_type.requires_approval:
            leave.status = LeaveStatus.approved
            leave.approved_at = now
        TenantScope(db, organization_code).add(leave)
        await db.flush()

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=employee.id,
            organization_code=organization_code,
            new_values={
                "leave_type": leave_type.name,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
                "status": leave.status.value,
            },
        )
        logger.info(
            "Leave %s applied by %s: %s to %s", leave.id, employee.id,
            data.start_date, data.end_date,
        )
        return leave

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_by_id(
        db: AsyncSession, leave_id: uuid.UUID, organization_code: str,
    ) -> LeaveApplication:
        leave = await TenantScope(db, organization_code).get(LeaveApplication, leave_id)
        if leave is None:
            raise NotFoundException("LeaveApplication", str(leave_id))
        return leave

    @staticmethod
    async def get_leave_applications(
        db: AsyncSession,
        organization_code: str,
        params: PaginationParams,
        filters: Optional[LeaveListFilters] = None,
    ) -> PaginatedResponse:
        filters = filters or LeaveListFilters()
        query = TenantScope(db, organization_code).select(LeaveApplication)
        query = apply_filters(
            query,
            LeaveApplication,
            {
                "employee_id": filters.employee_id,
                "status": filters.status,
                "leave_type_id": filters.leave_type_id,
                "start_date__from": filters.start_date,
                "end_date__to": filters.end_date,
            },
        )
        query = query.order_by(LeaveApplication.applied_at.desc())
        return await paginate(
            db, query, params, model=LeaveApplication, transform=LeaveService.to_response,
        )

    @staticmethod
    async def get_leave_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        organization_code: str,
        year: int,
    ) -> LeaveBalanceResponse:
        """Allowed, used (approved), pending and available days per active type."""
        await UserService.get_user_by_id(db, employee_id, organization_code)
        balances = []
        for leave_type in await LeaveTypeService.get_leave_types(db, organization_code):
            used = await LeaveService._days_taken(
                db, employee_id, leave_type.id, year, LeaveStatus.approved,
            )
            pending = await LeaveService._days_taken(
                db, employee_id, leave_type.id, year, LeaveStatus.pending,
            )
            balances.append(
                LeaveBalanceItem(
                    leave_type_id=leave_type.id,
                    leave_type_name=leave_type.name,
                    allowed=leave_type.days_allowed,
                    used=used,
                    pending=pending,
                    available=max(0, leave_type.days_allowed - used - pending),
                )
            )
        return LeaveBalanceResponse(employee_id=employee_id, year=year, balances=balances)

    @staticmethod
    async def get_approval_chain(
        db: AsyncSession, leave_id: uuid.UUID, organization_code: str,
    ) -> list[UserBrief]:
        """Users who may decide on this application, most senior first."""
        _, applicant = await LeaveService._load_for_decision(db, leave_id, organization_code)
        return await UserService.get_users_above_role(db, applicant.role, organization_code)

    # ── Decisions ───────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        approver: User,
    ) -> LeaveApplication:
        organization_code = approver.organization_code
        leave, applicant = await LeaveService._load_for_decision(
            db, leave_id, organization_code,
        )
        if leave.status != LeaveStatus.pending:
            raise ValidationException(
                {"status": [f"Leave application is already {leave.status.value}."]}
            )
        LeaveService._check_authority(approver, applicant, "approve")

        leave.status = LeaveStatus.approved
        leave.approved_by = approver.id
        leave.approved_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=approver.id,
            organization_code=organization_code,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value},
        )
        return leave

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        approver: User,
        reason: str,
    ) -> LeaveApplication:
        organization_code = approver.organization_code
        leave, applicant = await LeaveService._load_for_decision(
            db, leave_id, organization_code,
        )
        if leave.status != LeaveStatus.pending:
            raise ValidationException(
                {"status": [f"Leave application is already {leave.status.value}."]}
            )
        if not reason or not reason.strip():
            raise ValidationException({"reason": ["A rejection reason is required."]})
        LeaveService._check_authority(approver, applicant, "reject")

        leave.status = LeaveStatus.rejected
        leave.rejected_by = approver.id
        leave.rejected_at = utcnow()
        leave.rejection_reason = reason.strip()
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=approver.id,
            organization_code=organization_code,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "reason": reason.strip()},
        )
        return leave

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        actor: User,
        *,
        today: Optional[date] = None,
    ) -> LeaveApplication:
        """Cancel a pending or approved application that has not started yet."""
        organization_code = actor.organization_code
        leave, applicant = await LeaveService._load_for_decision(
            db, leave_id, organization_code,
        )
        if actor.id != applicant.id:
            LeaveService._check_authority(actor, applicant, "cancel")
        if leave.status not in _ACTIVE_STATUSES:
            raise ValidationException(
                {"status": [
                    f"Cannot cancel a leave application with status '{leave.status.value}'."
                ]}
            )
        today = today or await LeaveService._today(db, organization_code)
        if leave.start_date < today:
            raise ValidationException(
                {"start_date": ["Leave whose start date has passed cannot be cancelled."]}
            )

        old_status = leave.status.value
        leave.status = LeaveStatus.cancelled
        leave.cancelled_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            organization_code=organization_code,
            old_values={"status": old_status},
            new_values={"status": LeaveStatus.cancelled.value},
        )
        return leave
