"""Core HR ORM models: Organization, User."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from manahr.common.audit import AuditMixin, TimestampMixin
from manahr.common.constants import (
    DEFAULT_WORKING_DAYS,
    EmployeeType,
    GenderType,
    RoleLevel,
    UserStatus,
)
from manahr.database import Base


class Organization(Base, TimestampMixin):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    contact_info: Mapped[Optional[dict]] = mapped_column(JSONB)
    working_days: Mapped[list] = mapped_column(
        JSONB, default=lambda: list(DEFAULT_WORKING_DAYS)
    )
    work_start_time: Mapped[time] = mapped_column(sa.Time, default=time(9, 0))
    work_end_time: Mapped[time] = mapped_column(sa.Time, default=time(18, 0))
    currency: Mapped[str] = mapped_column(sa.String(3), default="INR")
    timezone: Mapped[str] = mapped_column(sa.String(64), default="Asia/Kolkata")
    subscription_plan: Mapped[str] = mapped_column(sa.String(20), default="free")
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Organization {self.code}>"


class User(Base, AuditMixin):
    """A person in an organization. Employment fields are optional."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    full_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(sa.String(20))
    password_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    role: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=int(RoleLevel.EMPLOYEE)
    )
    status: Mapped[UserStatus] = mapped_column(
        sa.Enum(UserStatus, name="user_status", native_enum=False, length=20),
        nullable=False,
        default=UserStatus.active,
    )
    organization: Mapped[Optional[str]] = mapped_column(sa.String(200))
    organization_code: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Employment
    employee_code: Mapped[Optional[str]] = mapped_column(sa.String(20))
    gender: Mapped[Optional[GenderType]] = mapped_column(
        sa.Enum(GenderType, name="gender_type", native_enum=False, length=10)
    )
    dob: Mapped[Optional[date]] = mapped_column(sa.Date)
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))
    designation: Mapped[Optional[str]] = mapped_column(sa.String(100))
    joining_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    employee_type: Mapped[Optional[EmployeeType]] = mapped_column(
        sa.Enum(EmployeeType, name="employee_type", native_enum=False, length=20)
    )
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")
    )
    salary_structure: Mapped[Optional[dict]] = mapped_column(JSONB)
    bank_details: Mapped[Optional[dict]] = mapped_column(JSONB)

    __table_args__ = (
        sa.UniqueConstraint("organization_code", "email", name="uq_users_org_email"),
        sa.UniqueConstraint("organization_code", "phone", name="uq_users_org_phone"),
        sa.UniqueConstraint(
            "organization_code", "employee_code", name="uq_users_org_employee_code"
        ),
        sa.Index("ix_users_org_role", "organization_code", "role"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.organization_code})>"
