"""Enums and constants for the time-off service."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


HR_ROLES = frozenset({UserRole.hr_admin, UserRole.system_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    ANNUAL = "ANNUAL"
    SICK = "SICK"
    MATERNITY = "MATERNITY"
    PATERNITY = "PATERNITY"
    HAJJ_UMRAH = "HAJJ_UMRAH"
    EMERGENCY = "EMERGENCY"
    COMPASSIONATE = "COMPASSIONATE"
    STUDY = "STUDY"
    UNPAID = "UNPAID"


class LeaveRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    MANAGER_APPROVED = "MANAGER_APPROVED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Statuses that hold a reservation against the balance.
RESERVING_STATUSES = frozenset({
    LeaveRequestStatus.PENDING,
    LeaveRequestStatus.MANAGER_APPROVED,
    LeaveRequestStatus.APPROVED,
})

TERMINAL_STATUSES = frozenset({
    LeaveRequestStatus.APPROVED,
    LeaveRequestStatus.REJECTED,
    LeaveRequestStatus.CANCELLED,
})


class ApproverType(str, enum.Enum):
    MANAGER = "MANAGER"
    HR = "HR"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LeaveAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


class LeaveEvent(str, enum.Enum):
    submitted = "leave.submitted"
    manager_approved = "leave.manager_approved"
    approved = "leave.approved"
    rejected = "leave.rejected"
    cancelled = "leave.cancelled"


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
