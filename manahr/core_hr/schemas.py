"""Core HR Pydantic v2 schemas — users, employees, organizations."""


import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from manahr.common.constants import (
    MAX_ROLE_LEVEL,
    MIN_ROLE_LEVEL,
    EmployeeType,
    GenderType,
    RoleLevel,
    UserStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Salary structure
# ═════════════════════════════════════════════════════════════════════


class SalaryComponent(BaseModel):
    """An allowance or deduction line; percentages are of basic salary."""

    type: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., ge=0)
    is_percentage: bool = False


class SalaryStructure(BaseModel):
    basic_salary: Decimal = Field(..., ge=0)
    allowances: list[SalaryComponent] = Field(default_factory=list)
    deductions: list[SalaryComponent] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════


class UserCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{7,15}$")
    password: str = Field(..., min_length=8, max_length=128)
    role: int = Field(default=int(RoleLevel.EMPLOYEE), ge=MIN_ROLE_LEVEL, le=MAX_ROLE_LEVEL)
    organization: Optional[str] = Field(None, max_length=200)


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{7,15}$")
    role: Optional[int] = Field(None, ge=MIN_ROLE_LEVEL, le=MAX_ROLE_LEVEL)
    status: Optional[UserStatus] = None


class EmployeeFields(BaseModel):
    """Employment attributes shared by create/update."""

    employee_code: Optional[str] = Field(None, min_length=1, max_length=20)
    gender: Optional[GenderType] = None
    dob: Optional[date] = None
    department: Optional[str] = Field(None, max_length=100)
    designation: Optional[str] = Field(None, max_length=100)
    joining_date: Optional[date] = None
    employee_type: Optional[EmployeeType] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    salary_structure: Optional[SalaryStructure] = None
    bank_details: Optional[dict[str, Any]] = None


class EmployeeCreate(UserCreate, EmployeeFields):
    employee_code: str = Field(..., min_length=1, max_length=20)


class EmployeeUpdate(UserUpdate, EmployeeFields):
    pass


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    phone: Optional[str] = None
    role: int
    status: UserStatus
    organization: Optional[str] = None
    organization_code: str
    last_login: Optional[datetime] = None
    employee_code: Optional[str] = None
    gender: Optional[GenderType] = None
    dob: Optional[date] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    joining_date: Optional[date] = None
    employee_type: Optional[EmployeeType] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    salary_structure: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class UserBrief(BaseModel):
    """Identity projection used by approval chains and lookups."""

    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    email: str
    full_name: str
    role: int
    employee_code: Optional[str] = None
    organization_code: Optional[str] = None
    status: Optional[UserStatus] = None


class UserListFilters(BaseModel):
    status: Optional[UserStatus] = None
    role: Optional[int] = None
    department: Optional[str] = None
    search: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Organizations
# ═════════════════════════════════════════════════════════════════════


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    working_days: list[str]
    work_start_time: time
    work_end_time: time
    currency: str
    timezone: str
    is_active: bool

    @field_validator("working_days", mode="before")
    @classmethod
    def _default_days(cls, v: Any) -> Any:
        return v or []
