"""Payroll Pydantic v2 schemas — request / response validation."""


import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from manahr.common.constants import PayrollStatus
from manahr.core_hr.schemas import SalaryComponent


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class PayrollGenerateRequest(BaseModel):
    """Generate one period. Salary fields default to the employee's salary structure."""

    employee_id: uuid.UUID
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    basic_salary: Optional[Decimal] = Field(None, ge=0)
    allowances: Optional[list[SalaryComponent]] = None
    deductions: Optional[list[SalaryComponent]] = None
    organization_code: Optional[str] = None


class MonthlyPayrollRequest(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    organization_code: Optional[str] = None


class PayrollUpdate(BaseModel):
    basic_salary: Optional[Decimal] = Field(None, ge=0)
    allowances: Optional[list[SalaryComponent]] = None
    deductions: Optional[list[SalaryComponent]] = None


class PayrollStatusUpdate(BaseModel):
    status: PayrollStatus
    organization_code: Optional[str] = None


class PayrollListFilters(BaseModel):
    employee_id: Optional[uuid.UUID] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = None
    status: Optional[PayrollStatus] = None


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class PayrollResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    organization_code: str
    month: int
    year: int
    basic_salary: Decimal
    allowances: list[SalaryComponent]
    deductions: list[SalaryComponent]
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    status: PayrollStatus
    generated_by: Optional[uuid.UUID] = None
    generated_at: Optional[datetime] = None
    payslip_url: Optional[str] = None


class PayrollFailure(BaseModel):
    employee_id: uuid.UUID
    error: str


class MonthlyPayrollResponse(BaseModel):
    month: int
    year: int
    generated: list[PayrollResponse]
    failed: list[PayrollFailure]


class PayrollStats(BaseModel):
    total_records: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    by_status: dict[str, int]
