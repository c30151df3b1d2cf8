"""Typed repositories for leave periods and leave-type configs."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select

from timeoff.common.constants import LeaveType
from timeoff.common.repository import BaseRepository
from timeoff.periods.models import LeavePeriod, LeaveTypeConfig


class LeavePeriodRepository(BaseRepository[LeavePeriod]):
    model = LeavePeriod

    async def find_active(self) -> Optional[LeavePeriod]:
        """Latest-starting period flagged active."""
        result = await self.session.execute(
            select(LeavePeriod)
            .where(LeavePeriod.is_active.is_(True))
            .order_by(LeavePeriod.start_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def find_overlapping(
        self,
        start_date: date,
        end_date: date,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[LeavePeriod]:
        stmt = select(LeavePeriod).where(
            LeavePeriod.start_date <= end_date,
            LeavePeriod.end_date >= start_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(LeavePeriod.id != exclude_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def list_query(self, *, active_only: bool = False):
        stmt = select(LeavePeriod).order_by(LeavePeriod.start_date.desc())
        if active_only:
            stmt = stmt.where(LeavePeriod.is_active.is_(True))
        return stmt


class LeaveTypeConfigRepository(BaseRepository[LeaveTypeConfig]):
    model = LeaveTypeConfig

    async def find_by_type(
        self, period_id: uuid.UUID, leave_type: LeaveType,
    ) -> Optional[LeaveTypeConfig]:
        result = await self.session.execute(
            select(LeaveTypeConfig).where(
                LeaveTypeConfig.leave_period_id == period_id,
                LeaveTypeConfig.type == leave_type,
            )
        )
        return result.scalars().first()

    async def list_for_period(
        self,
        period_id: Optional[uuid.UUID] = None,
        *,
        active_only: bool = False,
    ) -> list[LeaveTypeConfig]:
        stmt = select(LeaveTypeConfig).order_by(LeaveTypeConfig.type)
        if period_id is not None:
            stmt = stmt.where(LeaveTypeConfig.leave_period_id == period_id)
        if active_only:
            stmt = stmt.where(LeaveTypeConfig.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
