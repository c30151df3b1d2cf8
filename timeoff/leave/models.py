"""Leave ORM models: LeaveBalance, LeaveRequest, LeaveApproval."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeoff.common.audit import TimestampMixin, utcnow
from timeoff.common.constants import ApprovalStatus, ApproverType, LeaveRequestStatus
from timeoff.database import Base
from timeoff.periods.models import LeavePeriod, LeaveTypeConfig


class LeaveBalance(Base, TimestampMixin):
    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_period_id", "leave_type_config_id",
            name="uq_leave_balance",
        ),
        sa.CheckConstraint("used_quota >= 0", name="ck_leave_balance_used"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"), nullable=False, index=True,
    )
    leave_period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_period.id"), nullable=False,
    )
    leave_type_config_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_type_config.id"), nullable=False,
    )
    total_quota: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    used_quota: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)

    # Relationships
    period: Mapped[LeavePeriod] = relationship()
    leave_type: Mapped[LeaveTypeConfig] = relationship()

    @property
    def remaining_quota(self) -> int:
        return self.total_quota - self.used_quota

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.employee_id} used={self.used_quota}"
            f"/{self.total_quota}>"
        )


class LeaveRequest(Base, TimestampMixin):
    __tablename__ = "leave_request"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_dates"),
        sa.CheckConstraint("total_days > 0", name="ck_leave_request_days"),
        sa.Index("ix_leave_request_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_request_manager_status", "manager_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"), nullable=False,
    )
    leave_period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_period.id"), nullable=False,
    )
    leave_type_config_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_type_config.id"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[LeaveRequestStatus] = mapped_column(
        sa.Enum(LeaveRequestStatus, name="leave_request_status", native_enum=False, length=20),
        default=LeaveRequestStatus.PENDING,
        nullable=False,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False,
    )

    # Routing captured from the employee directory at submission
    requires_manager_approval: Mapped[bool] = mapped_column(sa.Boolean, nullable=False)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"),
    )

    manager_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    hr_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    hr_approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    finalized_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    emergency_contact: Mapped[Optional[str]] = mapped_column(sa.String(255))
    handover_notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Relationships
    leave_type: Mapped[LeaveTypeConfig] = relationship()
    approvals: Mapped[list[LeaveApproval]] = relationship(
        back_populates="leave_request",
        order_by="LeaveApproval.created_at",
    )

    def __repr__(self) -> str:
        return f"<LeaveRequest {self.id} {self.status.value} {self.start_date}..{self.end_date}>"


class LeaveApproval(Base):
    """Append-only record of one approver action per level."""

    __tablename__ = "leave_approval"
    __table_args__ = (
        sa.UniqueConstraint(
            "leave_request_id", "approver_id", "approver_type",
            name="uq_leave_approval",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_request.id"), nullable=False, index=True,
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"), nullable=False,
    )
    approver_type: Mapped[ApproverType] = mapped_column(
        sa.Enum(ApproverType, name="approver_type", native_enum=False, length=10),
        nullable=False,
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        sa.Enum(ApprovalStatus, name="approval_status", native_enum=False, length=10),
        nullable=False,
    )
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False,
    )

    # Relationships
    leave_request: Mapped[LeaveRequest] = relationship(back_populates="approvals")
