"""Common module — shared utilities for ManaHR."""

from manahr.common.audit import AuditMixin, AuditTrail, TimestampMixin, create_audit_entry
from manahr.common.constants import (
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AttendanceStatus,
    ClockState,
    LeaveStatus,
    PayrollStatus,
    RoleLevel,
    UserStatus,
    outranks,
    outranks_or_equal,
)
from manahr.common.exceptions import (
    AppException,
    BadRequestException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
    register_exception_handlers,
)
from manahr.common.filters import apply_filters, apply_search
from manahr.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)
from manahr.common.tenancy import (
    TenantScope,
    extract_organization_code,
    get_organization_code,
    normalize_organization_code,
)

__all__ = [
    # Audit
    "AuditMixin",
    "AuditTrail",
    "TimestampMixin",
    "create_audit_entry",
    # Constants / Enums
    "AttendanceStatus",
    "ClockState",
    "LeaveStatus",
    "PayrollStatus",
    "RoleLevel",
    "UserStatus",
    "outranks",
    "outranks_or_equal",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "BadRequestException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "UnauthorizedException",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_search",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
    # Tenancy
    "TenantScope",
    "extract_organization_code",
    "get_organization_code",
    "normalize_organization_code",
]
