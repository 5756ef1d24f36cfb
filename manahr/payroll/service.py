"""Payroll service layer — generation, corrections, lifecycle, stats.

Business logic:
  - One record per employee per (month, year) in an organization; duplicates
    are refused up front and by the unique constraint
  - Amounts computed with ``manahr.payroll.calculator`` on Decimal
  - Status moves draft → generated → paid; anything unpaid may be cancelled
  - Paid records cannot be edited or deleted
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.common.audit import create_audit_entry
from manahr.common.constants import PAYROLL_TRANSITIONS, PayrollStatus, UserStatus
from manahr.common.datetime_utils import utcnow
from manahr.common.exceptions import (
    AppException,
    ConflictError,
    NotFoundException,
    ValidationException,
)
from manahr.common.filters import apply_filters
from manahr.common.pagination import PaginatedResponse, PaginationParams, paginate
from manahr.common.tenancy import TenantScope
from manahr.core_hr.models import User
from manahr.core_hr.schemas import SalaryComponent, SalaryStructure
from manahr.payroll.calculator import calculate_salary, to_money
from manahr.payroll.models import PayrollRecord
from manahr.payroll.schemas import (
    MonthlyPayrollResponse,
    PayrollFailure,
    PayrollGenerateRequest,
    PayrollListFilters,
    PayrollResponse,
    PayrollStats,
    PayrollUpdate,
)

logger = logging.getLogger(__name__)

_EDITABLE = (PayrollStatus.draft, PayrollStatus.generated)


def _components(items: Optional[Sequence[SalaryComponent]]) -> list[dict[str, Any]]:
    return [c.model_dump(mode="json") for c in items or []]


class PayrollService:
    """Async payroll operations, always scoped to one organization."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def to_response(record: PayrollRecord) -> PayrollResponse:
        return PayrollResponse.model_validate(record)

    @staticmethod
    def _apply_amounts(
        record: PayrollRecord,
        basic_salary: Any,
        allowances: list[dict[str, Any]],
        deductions: list[dict[str, Any]],
    ) -> None:
        breakdown = calculate_salary(basic_salary, allowances, deductions)
        record.basic_salary = breakdown.basic_salary
        record.allowances = allowances
        record.deductions = deductions
        record.gross_salary = breakdown.gross_salary
        record.total_deductions = breakdown.total_deductions
        record.net_salary = breakdown.net_salary

    @staticmethod
    async def _existing(
        db: AsyncSession,
        employee_id: uuid.UUID,
        month: int,
        year: int,
        organization_code: str,
    ) -> Optional[PayrollRecord]:
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(PayrollRecord)
            .where(
                PayrollRecord.employee_id == employee_id,
                PayrollRecord.month == month,
                PayrollRecord.year == year,
            )
        )
        return result.scalars().first()

    @staticmethod
    def _salary_inputs(
        employee: User, data: PayrollGenerateRequest,
    ) -> tuple[Decimal, list[dict[str, Any]], list[dict[str, Any]]]:
        """Explicit request values win; the rest come from the salary structure."""
        structure = (
            SalaryStructure.model_validate(employee.salary_structure)
            if employee.salary_structure
            else None
        )
        basic = data.basic_salary
        if basic is None:
            if structure is None:
                raise ValidationException(
                    {"basic_salary": [
                        f"Employee {employee.id} has no salary structure; "
                        "basic_salary is required."
                    ]}
                )
            basic = structure.basic_salary
        allowances = data.allowances
        if allowances is None and structure is not None:
            allowances = structure.allowances
        deductions = data.deductions
        if deductions is None and structure is not None:
            deductions = structure.deductions
        return basic, _components(allowances), _components(deductions)

    # ── Generate ────────────────────────────────────────────────────

    @staticmethod
    async def generate_payroll(
        db: AsyncSession,
        data: PayrollGenerateRequest,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRecord:
        """Create the payroll record for one employee and period.

        Raises ConflictError when the period already has a record.
        """
        employee = await TenantScope(db, organization_code).get(User, data.employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(data.employee_id))
        if employee.status != UserStatus.active:
            raise ValidationException({"employee_id": ["Employee is not active."]})

        period = f"{data.year}-{data.month:02d}"
        if await PayrollService._existing(
            db, employee.id, data.month, data.year, organization_code,
        ):
            raise ConflictError(
                "period",
                period,
                f"Payroll for employee {employee.id} already exists for {period}.",
            )

        basic, allowances, deductions = PayrollService._salary_inputs(employee, data)
        record = PayrollRecord(
            employee_id=employee.id,
            month=data.month,
            year=data.year,
            status=PayrollStatus.draft,
            generated_by=actor_id,
            generated_at=utcnow(),
        )
        PayrollService._apply_amounts(record, basic, allowances, deductions)

        # Unique (employee, month, year, organization) is the final guard
        try:
            async with db.begin_nested():
                TenantScope(db, organization_code).add(record)
        except IntegrityError:
            raise ConflictError(
                "period",
                period,
                f"Payroll for employee {data.employee_id} already exists for {period}.",
            )

        await create_audit_entry(
            db,
            action="generate",
            entity_type="payroll_record",
            entity_id=record.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={
                "employee_id": str(employee.id),
                "period": period,
                "net_salary": str(record.net_salary),
            },
        )
        logger.info("Generated payroll %s for %s (%s)", record.id, employee.id, period)
        return record

    @staticmethod
    async def generate_monthly_payroll(
        db: AsyncSession,
        month: int,
        year: int,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> MonthlyPayrollResponse:
        """Generate for every active employee with an employee code."""
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(User)
            .where(User.status == UserStatus.active, User.employee_code.is_not(None))
            .order_by(User.employee_code.asc())
        )
        generated: list[PayrollResponse] = []
        failed: list[PayrollFailure] = []
        for employee_id in [e.id for e in result.scalars().all()]:
            try:
                record = await PayrollService.generate_payroll(
                    db,
                    PayrollGenerateRequest(employee_id=employee_id, month=month, year=year),
                    organization_code,
                    actor_id=actor_id,
                )
                generated.append(PayrollService.to_response(record))
            except AppException as exc:
                failed.append(PayrollFailure(employee_id=employee_id, error=exc.detail))

        logger.info(
            "Monthly payroll %d-%02d for %s: %d generated, %d failed",
            year, month, organization_code, len(generated), len(failed),
        )
        return MonthlyPayrollResponse(
            month=month, year=year, generated=generated, failed=failed,
        )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_payroll_by_id(
        db: AsyncSession, payroll_id: uuid.UUID, organization_code: str,
    ) -> PayrollRecord:
        record = await TenantScope(db, organization_code).get(PayrollRecord, payroll_id)
        if record is None:
            raise NotFoundException("PayrollRecord", str(payroll_id))
        return record

    @staticmethod
    async def get_all_payrolls(
        db: AsyncSession,
        organization_code: str,
        params: PaginationParams,
        filters: Optional[PayrollListFilters] = None,
    ) -> PaginatedResponse:
        filters = filters or PayrollListFilters()
        query = TenantScope(db, organization_code).select(PayrollRecord)
        query = apply_filters(query, PayrollRecord, filters.model_dump())
        query = query.order_by(PayrollRecord.year.desc(), PayrollRecord.month.desc())
        return await paginate(
            db, query, params, model=PayrollRecord, transform=PayrollService.to_response,
        )

    @staticmethod
    async def get_payroll_stats(
        db: AsyncSession,
        organization_code: str,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> PayrollStats:
        scope = TenantScope(db, organization_code)
        filters = {"month": month, "year": year}

        totals_q = scope.filter(
            select(
                func.count(PayrollRecord.id),
                func.coalesce(func.sum(PayrollRecord.gross_salary), 0),
                func.coalesce(func.sum(PayrollRecord.total_deductions), 0),
                func.coalesce(func.sum(PayrollRecord.net_salary), 0),
            ),
            PayrollRecord,
        )
        count, gross, deductions, net = (
            await db.execute(apply_filters(totals_q, PayrollRecord, filters))
        ).one()

        status_q = scope.filter(
            select(PayrollRecord.status, func.count(PayrollRecord.id)),
            PayrollRecord,
        ).group_by(PayrollRecord.status)
        rows = (await db.execute(apply_filters(status_q, PayrollRecord, filters))).all()

        return PayrollStats(
            total_records=count,
            total_gross=to_money(gross),
            total_deductions=to_money(deductions),
            total_net=to_money(net),
            by_status={
                (s.value if isinstance(s, PayrollStatus) else str(s)): n for s, n in rows
            },
        )

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_payroll(
        db: AsyncSession,
        payroll_id: uuid.UUID,
        data: PayrollUpdate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRecord:
        """Correct amounts on a draft or generated record; totals are recomputed."""
        record = await PayrollService.get_payroll_by_id(db, payroll_id, organization_code)
        if record.status not in _EDITABLE:
            raise ValidationException(
                {"status": [f"A {record.status.value} payroll cannot be edited."]}
            )

        old_net = str(record.net_salary)
        changes = data.model_dump(exclude_unset=True)
        PayrollService._apply_amounts(
            record,
            data.basic_salary if data.basic_salary is not None else record.basic_salary,
            _components(data.allowances) if "allowances" in changes else list(record.allowances or []),
            _components(data.deductions) if "deductions" in changes else list(record.deductions or []),
        )
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="payroll_record",
            entity_id=record.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"net_salary": old_net},
            new_values={"net_salary": str(record.net_salary), "fields": sorted(changes)},
        )
        return record

    @staticmethod
    async def update_payroll_status(
        db: AsyncSession,
        payroll_id: uuid.UUID,
        status: PayrollStatus,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRecord:
        record = await PayrollService.get_payroll_by_id(db, payroll_id, organization_code)
        current = record.status
        if status not in PAYROLL_TRANSITIONS[current]:
            raise ValidationException(
                {"status": [f"Cannot move payroll from {current.value} to {status.value}."]}
            )
        record.status = status
        if status == PayrollStatus.generated:
            record.generated_at = utcnow()
            record.generated_by = actor_id or record.generated_by
        await db.flush()

        await create_audit_entry(
            db,
            action="status_change",
            entity_type="payroll_record",
            entity_id=record.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"status": current.value},
            new_values={"status": status.value},
        )
        return record

    @staticmethod
    async def delete_payroll(
        db: AsyncSession,
        payroll_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        record = await PayrollService.get_payroll_by_id(db, payroll_id, organization_code)
        if record.status == PayrollStatus.paid:
            raise ValidationException({"status": ["Cannot delete paid payroll."]})

        snapshot = {
            "employee_id": str(record.employee_id),
            "period": f"{record.year}-{record.month:02d}",
            "status": record.status.value,
        }
        await db.delete(record)
        await db.flush()
        await create_audit_entry(
            db,
            action="delete",
            entity_type="payroll_record",
            entity_id=payroll_id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=snapshot,
        )
