"""Common module: shared utilities for the time-off service."""

from timeoff.common.audit import AuditTrail, TimestampMixin, create_audit_entry
from timeoff.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApprovalStatus,
    ApproverType,
    LeaveAction,
    LeaveEvent,
    LeaveRequestStatus,
    LeaveType,
    NotificationType,
    UserRole,
)
from timeoff.common.exceptions import (
    AppException,
    BusinessRuleViolation,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationFailed,
    register_exception_handlers,
)
from timeoff.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate_query,
)

__all__ = [
    # Audit
    "AuditTrail",
    "TimestampMixin",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalStatus",
    "ApproverType",
    "LeaveAction",
    "LeaveEvent",
    "LeaveRequestStatus",
    "LeaveType",
    "NotificationType",
    "UserRole",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "BusinessRuleViolation",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "ValidationFailed",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate_query",
]
