"""Attendance Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Request / *Create / *Update → request bodies (write)
  - *Response                    → response bodies (read)
  - *Summary / *Stats            → aggregates
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from manahr.common.constants import NOTES_MAX_LENGTH, AttendanceStatus, ClockState
from manahr.common.datetime_utils import ensure_utc


# ═════════════════════════════════════════════════════════════════════
# Clock in / out
# ═════════════════════════════════════════════════════════════════════


class ClockInRequest(BaseModel):
    """Payload for clocking in. Only ``work_from_home`` may be requested explicitly."""

    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    status: Optional[AttendanceStatus] = Field(
        None, description="Set to work_from_home for remote days",
    )
    organization_code: Optional[str] = None


class ClockOutRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    organization_code: Optional[str] = None


class ClockInResponse(BaseModel):
    session_id: uuid.UUID
    check_in: datetime
    date: date
    status: AttendanceStatus
    notes: Optional[str] = None
    is_update: bool
    is_logged_in: bool


class ClockOutResponse(BaseModel):
    session_id: uuid.UUID
    first_clock_in: datetime
    last_clock_out: datetime
    total_hours_today: float
    status: AttendanceStatus
    is_logged_in: bool


# ═════════════════════════════════════════════════════════════════════
# Today's status
# ═════════════════════════════════════════════════════════════════════


class SessionItem(BaseModel):
    session_id: uuid.UUID
    check_in: datetime
    check_out: Optional[datetime] = None
    total_hours: Optional[float] = None
    status: AttendanceStatus
    is_active: bool
    notes: Optional[str] = None


class DailySummary(BaseModel):
    total_hours: float
    completed_hours: float
    current_session_hours: float
    sessions_count: int
    completed_sessions: int
    active_session: bool


class TodayStatusResponse(BaseModel):
    date: date
    status: ClockState
    can_clock_in: bool
    can_clock_out: bool
    sessions: list[SessionItem]
    daily_summary: DailySummary


class ResetTodayResponse(BaseModel):
    date: date
    deleted_count: int
    deleted_ids: list[uuid.UUID]


# ═════════════════════════════════════════════════════════════════════
# Attendance record
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    organization_code: str
    date: date
    check_in: datetime
    check_out: Optional[datetime] = None
    total_hours: Optional[float] = None
    status: AttendanceStatus
    notes: Optional[str] = None
    is_logged_in: bool
    created_by: Optional[uuid.UUID] = None
    updated_by: Optional[uuid.UUID] = None
    version: int


class AttendanceCreate(BaseModel):
    """Administrative mark for any employee."""

    employee_id: uuid.UUID
    check_in: datetime
    check_out: Optional[datetime] = None
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)

    @model_validator(mode="after")
    def _check_order(self) -> "AttendanceCreate":
        if self.check_out is not None and ensure_utc(self.check_out) <= ensure_utc(self.check_in):
            raise ValueError("check_out must be after check_in")
        return self


class AttendanceUpdate(BaseModel):
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    version: Optional[int] = Field(
        None, ge=1, description="Expected record version; mismatch is rejected with 409",
    )


class BulkAttendanceRequest(BaseModel):
    records: list[AttendanceCreate] = Field(..., min_length=1, max_length=500)


class BulkFailure(BaseModel):
    index: int
    employee_id: uuid.UUID
    error: str


class BulkAttendanceResponse(BaseModel):
    created: list[AttendanceRecordResponse]
    failed: list[BulkFailure]


# ═════════════════════════════════════════════════════════════════════
# Aggregates
# ═════════════════════════════════════════════════════════════════════


class StatusCounts(BaseModel):
    total_records: int = 0
    present_count: int = 0
    absent_count: int = 0
    late_count: int = 0
    half_day_count: int = 0
    wfh_count: int = 0


class AttendanceReportResponse(BaseModel):
    start_date: date
    end_date: date
    records: list[AttendanceRecordResponse]
    summary: StatusCounts


class EmployeeAttendanceSummary(BaseModel):
    employee_id: uuid.UUID
    year: int
    month: Optional[int] = None
    total_working_days: int
    present_days: float
    absent_days: int
    late_days: int
    half_days: int
    wfh_days: int
    attendance_percentage: float
    total_hours: float
    average_hours: float


class MonthlyAttendanceResponse(BaseModel):
    employee_id: uuid.UUID
    year: int
    month: int
    records: list[AttendanceRecordResponse]
    summary: EmployeeAttendanceSummary


class TodayStats(BaseModel):
    present: int
    absent: int
    late: int
    half_day: int
    work_from_home: int
    clocked_in_now: int
    not_marked: int


class MonthStats(BaseModel):
    total_records: int
    attended_days: float
    average_attendance: float
    average_hours: float


class AttendanceStats(BaseModel):
    date: date
    total_employees: int
    today: TodayStats
    this_month: MonthStats
