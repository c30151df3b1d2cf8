"""Leave period and leave-type policy ORM models."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeoff.common.audit import TimestampMixin
from timeoff.common.constants import LeaveType
from timeoff.database import Base


class LeavePeriod(Base, TimestampMixin):
    __tablename__ = "leave_period"
    __table_args__ = (
        sa.CheckConstraint("start_date < end_date", name="ck_leave_period_dates"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)

    # Relationships
    leave_types: Mapped[list[LeaveTypeConfig]] = relationship(
        back_populates="period",
        order_by="LeaveTypeConfig.type",
    )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def __repr__(self) -> str:
        return f"<LeavePeriod {self.name} {self.start_date}..{self.end_date}>"


class LeaveTypeConfig(Base, TimestampMixin):
    __tablename__ = "leave_type_config"
    __table_args__ = (
        sa.UniqueConstraint("leave_period_id", "type", name="uq_leave_type_config_period_type"),
        sa.CheckConstraint("default_quota >= 0", name="ck_leave_type_config_quota"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    leave_period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_period.id"), nullable=False, index=True,
    )
    type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", native_enum=False, length=20),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    default_quota: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    advance_notice_days: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)
    is_carry_forward: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    max_carry_forward: Mapped[Optional[int]] = mapped_column(sa.Integer)
    requires_approval: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    allow_negative_balance: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)

    # Relationships
    period: Mapped[LeavePeriod] = relationship(back_populates="leave_types")

    def __repr__(self) -> str:
        return f"<LeaveTypeConfig {self.type.value} quota={self.default_quota}>"
