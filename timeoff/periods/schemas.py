"""Leave period / leave type Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from timeoff.common.constants import LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Period
# ═════════════════════════════════════════════════════════════════════


class LeavePeriodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    is_active: bool = True
    description: Optional[str] = None


class LeavePeriodUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None


class LeavePeriodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SetupDefaultTypesOut(BaseModel):
    period_id: uuid.UUID
    created: int


# ═════════════════════════════════════════════════════════════════════
# Leave Type Config
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeConfigCreate(BaseModel):
    leave_period_id: uuid.UUID
    type: LeaveType
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    default_quota: int = Field(..., ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)
    advance_notice_days: int = Field(0, ge=0)
    is_carry_forward: bool = False
    max_carry_forward: Optional[int] = Field(None, ge=0)
    requires_approval: bool = True
    allow_negative_balance: bool = False
    is_active: bool = True


class LeaveTypeConfigUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_quota: Optional[int] = Field(None, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)
    advance_notice_days: Optional[int] = Field(None, ge=0)
    is_carry_forward: Optional[bool] = None
    max_carry_forward: Optional[int] = Field(None, ge=0)
    requires_approval: Optional[bool] = None
    allow_negative_balance: Optional[bool] = None
    is_active: Optional[bool] = None


class LeaveTypeConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    leave_period_id: uuid.UUID
    type: LeaveType
    name: str
    description: Optional[str] = None
    default_quota: int
    max_consecutive_days: Optional[int] = None
    advance_notice_days: int
    is_carry_forward: bool
    max_carry_forward: Optional[int] = None
    requires_approval: bool
    allow_negative_balance: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
