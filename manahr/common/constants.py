"""Enums and constants for ManaHR — role levels, statuses, permission catalogue."""

from __future__ import annotations

import enum


# ── Roles ───────────────────────────────────────────────────────────

class RoleLevel(enum.IntEnum):
    """Canonical role levels. Lower number = more authority."""

    SUPER_ADMIN = 1
    ADMIN = 2
    HR = 3
    MANAGER = 4
    EMPLOYEE = 5


class DataAccessLevel(enum.IntEnum):
    ALL = 1
    TEAM = 2
    OWN = 3


MIN_ROLE_LEVEL = 1
MAX_ROLE_LEVEL = 100


def outranks(a: int, b: int) -> bool:
    """True when role level *a* carries strictly more authority than *b*."""
    return int(a) < int(b)


def outranks_or_equal(a: int, b: int) -> bool:
    return int(a) <= int(b)


def can_assign_level(actor_level: int, level: int) -> bool:
    """Whether a holder of *actor_level* may hand *level* to a user or role."""
    return int(actor_level) == RoleLevel.SUPER_ADMIN or outranks_or_equal(actor_level, level)


# SQL forms of the predicates above, for level columns in queries

def outranks_clause(column, level: int):
    return column < int(level)


def outranks_or_equal_clause(column, level: int):
    return column <= int(level)


# ── Identity ────────────────────────────────────────────────────────

class UserStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class GenderType(str, enum.Enum):
    male = "male"
    female = "female"
    other = "other"


class EmployeeType(str, enum.Enum):
    full_time = "full_time"
    part_time = "part_time"
    contract = "contract"
    intern = "intern"


# ── Permissions ─────────────────────────────────────────────────────

class PermissionModule(str, enum.Enum):
    users = "users"
    employees = "employees"
    attendance = "attendance"
    leave = "leave"
    payroll = "payroll"
    documents = "documents"
    settings = "settings"
    reports = "reports"
    dashboard = "dashboard"
    system = "system"


class PermissionAction(str, enum.Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"
    approve = "approve"
    export = "export"
    import_ = "import"
    configure = "configure"


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    half_day = "half_day"
    work_from_home = "work_from_home"


class ClockState(str, enum.Enum):
    """Today's clock state as reported to the client."""

    not_started = "not_started"
    clocked_in = "clocked_in"
    available = "available"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# ── Payroll ─────────────────────────────────────────────────────────

class PayrollStatus(str, enum.Enum):
    draft = "draft"
    generated = "generated"
    paid = "paid"
    cancelled = "cancelled"


PAYROLL_TRANSITIONS: dict[PayrollStatus, set[PayrollStatus]] = {
    PayrollStatus.draft: {PayrollStatus.generated, PayrollStatus.cancelled},
    PayrollStatus.generated: {PayrollStatus.paid, PayrollStatus.cancelled},
    PayrollStatus.paid: set(),
    PayrollStatus.cancelled: set(),
}


# ── Fallback permission matrix ──────────────────────────────────────
# Used when an organization has no Role row for a canonical level.

def _perms(module: PermissionModule, *actions: PermissionAction) -> list[str]:
    return [f"{module.value}:{a.value}" for a in actions]


_A = PermissionAction
_M = PermissionModule

DEFAULT_ROLE_PERMISSIONS: dict[RoleLevel, list[str]] = {
    RoleLevel.EMPLOYEE: [
        *_perms(_M.attendance, _A.create, _A.read),
        *_perms(_M.leave, _A.create, _A.read),
        *_perms(_M.payroll, _A.read),
        *_perms(_M.dashboard, _A.read),
    ],
    RoleLevel.MANAGER: [
        *_perms(_M.users, _A.read),
        *_perms(_M.employees, _A.read),
        *_perms(_M.attendance, _A.create, _A.read, _A.export),
        *_perms(_M.leave, _A.create, _A.read, _A.approve),
        *_perms(_M.payroll, _A.read),
        *_perms(_M.reports, _A.read),
        *_perms(_M.dashboard, _A.read),
    ],
    RoleLevel.HR: [
        *_perms(_M.users, _A.create, _A.read, _A.update),
        *_perms(_M.employees, _A.create, _A.read, _A.update, _A.delete),
        *_perms(_M.attendance, _A.create, _A.read, _A.update, _A.delete, _A.export, _A.import_),
        *_perms(_M.leave, _A.create, _A.read, _A.update, _A.delete, _A.approve, _A.configure),
        *_perms(_M.payroll, _A.create, _A.read, _A.update, _A.approve, _A.export),
        *_perms(_M.documents, _A.create, _A.read, _A.update),
        *_perms(_M.reports, _A.read, _A.export),
        *_perms(_M.dashboard, _A.read),
    ],
    RoleLevel.ADMIN: [
        f"{m.value}:{a.value}"
        for m in PermissionModule
        if m is not PermissionModule.system
        for a in PermissionAction
    ],
    RoleLevel.SUPER_ADMIN: [
        f"{m.value}:{a.value}" for m in PermissionModule for a in PermissionAction
    ],
}


# ── Misc ────────────────────────────────────────────────────────────

DEFAULT_WORKING_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]
ORGANIZATION_CODE_PATTERN = r"^[A-Z0-9]{2,10}$"
DATE_FORMAT = "%Y-%m-%d"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
NOTES_MAX_LENGTH = 500
