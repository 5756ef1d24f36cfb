"""Payroll ORM models: PayrollRecord."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from manahr.common.audit import TimestampMixin
from manahr.common.constants import PayrollStatus
from manahr.database import Base


class PayrollRecord(Base, TimestampMixin):
    """One employee's salary for one month. Unique per (employee, month, year, org)."""

    __tablename__ = "payroll_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    organization_code: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False)
    allowances: Mapped[list] = mapped_column(JSONB, default=list)
    deductions: Mapped[list] = mapped_column(JSONB, default=list)
    gross_salary: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False)
    status: Mapped[PayrollStatus] = mapped_column(
        sa.Enum(PayrollStatus, name="payroll_status", native_enum=False, length=20),
        nullable=False,
        default=PayrollStatus.draft,
    )
    generated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")
    )
    generated_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    payslip_url: Mapped[Optional[str]] = mapped_column(sa.String(500))

    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "month", "year", "organization_code",
            name="uq_payroll_employee_period",
        ),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_payroll_month"),
        sa.Index("ix_payroll_org_period", "organization_code", "year", "month"),
    )
