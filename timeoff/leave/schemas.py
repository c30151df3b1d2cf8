"""Leave Pydantic v2 schemas: request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timeoff.common.constants import (
    ApprovalStatus,
    ApproverType,
    LeaveRequestStatus,
    LeaveType,
)


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One balance row with the remaining quota derived."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_period_id: uuid.UUID
    leave_type_config_id: uuid.UUID
    leave_type: Optional[LeaveType] = None
    leave_type_name: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    total_quota: int
    used_quota: int
    remaining_quota: int

    @classmethod
    def from_balance(cls, balance) -> LeaveBalanceOut:
        """Build from a LeaveBalance whose ``leave_type`` and ``period`` are loaded."""
        return cls(
            id=balance.id,
            employee_id=balance.employee_id,
            leave_period_id=balance.leave_period_id,
            leave_type_config_id=balance.leave_type_config_id,
            leave_type=balance.leave_type.type,
            leave_type_name=balance.leave_type.name,
            period_start=balance.period.start_date,
            period_end=balance.period.end_date,
            total_quota=balance.total_quota,
            used_quota=balance.used_quota,
            remaining_quota=balance.remaining_quota,
        )


class LeaveBalanceSummary(BaseModel):
    employee_id: uuid.UUID
    leave_period_id: uuid.UUID
    total_quota: int
    used_quota: int
    remaining_quota: int
    balances: list[LeaveBalanceOut]


# ═════════════════════════════════════════════════════════════════════
# Leave Request: write
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Submission body. Date order and policy rules are checked by the service."""

    leave_type_config_id: uuid.UUID
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=2000)
    emergency_contact: Optional[str] = Field(None, max_length=255)
    handover_notes: Optional[str] = None


class LeaveApproveRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)


class LeaveRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    comments: Optional[str] = Field(None, max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Leave Request: read
# ═════════════════════════════════════════════════════════════════════


class LeaveApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    leave_request_id: uuid.UUID
    approver_id: uuid.UUID
    approver_type: ApproverType
    status: ApprovalStatus
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class LeaveRequestOut(BaseModel):
    """Full leave request with per-level approval status derived from its state."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_period_id: uuid.UUID
    leave_type_config_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: LeaveRequestStatus
    submitted_at: datetime
    requires_manager_approval: bool
    manager_id: Optional[uuid.UUID] = None
    manager_comments: Optional[str] = None
    manager_approved_at: Optional[datetime] = None
    hr_comments: Optional[str] = None
    hr_approved_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    emergency_contact: Optional[str] = None
    handover_notes: Optional[str] = None

    manager_approval_status: Optional[ApprovalStatus] = None
    hr_approval_status: Optional[ApprovalStatus] = None

    @model_validator(mode="after")
    def derive_approval_statuses(self) -> LeaveRequestOut:
        # Approved without an HR sign-off means the type needed no approval.
        auto_approved = (
            self.status == LeaveRequestStatus.APPROVED and self.hr_approved_at is None
        )
        # Rejected before the manager signed off means the manager rejected it.
        manager_rejected = (
            self.status == LeaveRequestStatus.REJECTED
            and self.requires_manager_approval
            and self.manager_approved_at is None
        )

        if not self.requires_manager_approval or auto_approved:
            self.manager_approval_status = None
        elif manager_rejected:
            self.manager_approval_status = ApprovalStatus.REJECTED
        elif self.manager_approved_at is not None:
            self.manager_approval_status = ApprovalStatus.APPROVED
        else:
            self.manager_approval_status = ApprovalStatus.PENDING

        if auto_approved:
            self.hr_approval_status = None
        elif self.status == LeaveRequestStatus.APPROVED:
            self.hr_approval_status = ApprovalStatus.APPROVED
        elif self.status == LeaveRequestStatus.REJECTED and not manager_rejected:
            self.hr_approval_status = ApprovalStatus.REJECTED
        else:
            self.hr_approval_status = ApprovalStatus.PENDING
        return self


class LeaveRequestDetailOut(LeaveRequestOut):
    """A single request with its approval trail, oldest decision first."""

    approvals: list[LeaveApprovalOut] = Field(default_factory=list)
