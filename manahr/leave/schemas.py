"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request → request bodies (write)
  - *Response                    → response bodies (read)
  - *Brief                       → compact embedded representations
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from manahr.common.constants import LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    days_allowed: int = Field(..., ge=1, le=365)
    is_carry_forward: bool = False
    max_carry_forward_days: int = Field(0, ge=0)
    color: str = Field("#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")
    requires_approval: bool = True
    min_days_notice: int = Field(0, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)


class LeaveTypeCreate(LeaveTypeBase):
    pass


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    days_allowed: Optional[int] = Field(None, ge=1, le=365)
    is_carry_forward: Optional[bool] = None
    max_carry_forward_days: Optional[int] = Field(None, ge=0)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    requires_approval: Optional[bool] = None
    min_days_notice: Optional[int] = Field(None, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class LeaveTypeResponse(LeaveTypeBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    is_active: bool
    organization_code: str


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: str


# ═════════════════════════════════════════════════════════════════════
# Leave Application
# ═════════════════════════════════════════════════════════════════════


class LeaveApplyRequest(BaseModel):
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=500)
    organization_code: Optional[str] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "LeaveApplyRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LeaveRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    organization_code: Optional[str] = None


class LeaveApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    leave_type: Optional[LeaveTypeBrief] = None
    organization_code: str
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: LeaveStatus
    applied_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[uuid.UUID] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None


class LeaveListFilters(BaseModel):
    employee_id: Optional[uuid.UUID] = None
    status: Optional[LeaveStatus] = None
    leave_type_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ═════════════════════════════════════════════════════════════════════
# Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceItem(BaseModel):
    leave_type_id: uuid.UUID
    leave_type_name: str
    allowed: int
    used: int
    pending: int
    available: int


class LeaveBalanceResponse(BaseModel):
    employee_id: uuid.UUID
    year: int
    balances: list[LeaveBalanceItem]
