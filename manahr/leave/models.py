"""Leave ORM models: LeaveType, LeaveApplication."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manahr.common.audit import AuditMixin, TimestampMixin
from manahr.common.constants import LeaveStatus
from manahr.common.datetime_utils import utcnow
from manahr.database import Base


class LeaveType(Base, AuditMixin):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.String(500))
    days_allowed: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    is_carry_forward: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    max_carry_forward_days: Mapped[int] = mapped_column(sa.Integer, default=0)
    color: Mapped[str] = mapped_column(sa.String(7), default="#3B82F6")
    requires_approval: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    min_days_notice: Mapped[int] = mapped_column(sa.Integer, default=0)
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    organization_code: Mapped[str] = mapped_column(sa.String(10), nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("organization_code", "name", name="uq_leave_types_org_name"),
        sa.CheckConstraint("days_allowed BETWEEN 1 AND 365", name="ck_leave_types_days"),
    )


class LeaveApplication(Base, TimestampMixin):
    __tablename__ = "leave_applications"

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
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    organization_code: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, length=20),
        nullable=False,
        default=LeaveStatus.pending,
    )
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.String(500))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(lazy="joined")

    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_dates_ordered"),
        sa.Index("ix_leave_applications_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_applications_org_status", "organization_code", "status"),
    )

    @staticmethod
    def span_days(start: date, end: date) -> int:
        """Inclusive calendar-day count."""
        return (end - start).days + 1
