"""Attendance ORM models: AttendanceRecord."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from manahr.common.audit import AuditMixin
from manahr.common.constants import AttendanceStatus
from manahr.database import Base


class AttendanceRecord(Base, AuditMixin):
    """One employee's clock session for one local calendar day.

    Re-clocking in on the same day reopens this row; ``check_in`` always
    holds the first clock-in of the day.
    """

    __tablename__ = "attendance_records"

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
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    check_in: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    check_out: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    total_hours: Mapped[Optional[float]] = mapped_column(sa.Float)
    status: Mapped[AttendanceStatus] = mapped_column(
        sa.Enum(AttendanceStatus, name="attendance_status", native_enum=False, length=20),
        nullable=False,
        default=AttendanceStatus.present,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.String(500))
    is_logged_in: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        sa.Index("ix_attendance_employee_date", "employee_id", "date"),
        sa.Index("ix_attendance_org_date", "organization_code", "date"),
    )

    @property
    def is_open(self) -> bool:
        return self.check_out is None

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.date} {self.status}>"
