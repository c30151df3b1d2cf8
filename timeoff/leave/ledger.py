"""Balance ledger: per employee / period / leave type quota accounting.

``used_quota`` is incremented when a request is submitted (the reservation)
and decremented only on rejection or cancellation. Final approval consumes
nothing further. Every mutating call locks the balance row first.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.exceptions import (
    InsufficientBalance,
    NotFoundException,
    ValidationFailed,
)
from timeoff.leave.models import LeaveBalance
from timeoff.leave.repository import LeaveBalanceRepository, LeaveRequestRepository
from timeoff.leave.schemas import LeaveBalanceOut, LeaveBalanceSummary
from timeoff.periods.models import LeaveTypeConfig
from timeoff.periods.repository import LeavePeriodRepository, LeaveTypeConfigRepository
from timeoff.periods.service import LeavePeriodService

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Quota operations bound to one session (one transaction)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.balances = LeaveBalanceRepository(db)
        self.requests = LeaveRequestRepository(db)
        self.types = LeaveTypeConfigRepository(db)
        self.periods = LeavePeriodRepository(db)

    async def _policy(self, type_config_id: uuid.UUID) -> LeaveTypeConfig:
        policy = await self.types.get(type_config_id)
        if policy is None:
            raise NotFoundException("LeaveTypeConfig", str(type_config_id))
        return policy

    async def get_or_initialize(
        self,
        employee_id: uuid.UUID,
        type_config_id: uuid.UUID,
        period_id: Optional[uuid.UUID] = None,
        *,
        custom_quota: Optional[int] = None,
        lock: bool = False,
    ) -> LeaveBalance:
        """Return the balance row, creating it from the type's default quota if absent.

        Without ``period_id`` the active period is used (``NoActivePeriod`` if none).
        """
        if period_id is None:
            period_id = (await LeavePeriodService.get_active_period(self.db)).id
        elif await self.periods.get(period_id) is None:
            raise NotFoundException("LeavePeriod", str(period_id))

        policy = await self._policy(type_config_id)
        if policy.leave_period_id != period_id:
            raise ValidationFailed(
                "leave_type_period",
                f"Leave type '{policy.name}' does not belong to period '{period_id}'.",
            )

        balance = await self.balances.find(employee_id, period_id, type_config_id, lock=lock)
        if balance is not None:
            return balance

        quota = policy.default_quota if custom_quota is None else custom_quota
        if quota < 0:
            raise ValidationFailed("custom_quota", "Quota cannot be negative.")

        balance = await self.balances.add(
            LeaveBalance(
                employee_id=employee_id,
                leave_period_id=period_id,
                leave_type_config_id=type_config_id,
                total_quota=quota,
                used_quota=0,
            )
        )
        # A freshly inserted row is held by this transaction until commit.
        logger.info(
            "Initialized %s balance for employee %s: %d day(s)",
            policy.type.value, employee_id, quota,
        )
        return balance

    async def reserve(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
        days: int,
    ) -> LeaveBalance:
        """Increment ``used_quota`` by ``days``; returns the post-reservation balance."""
        if days <= 0:
            raise ValidationFailed("days", "Reserved days must be positive.")

        balance = await self.get_or_initialize(
            employee_id, type_config_id, period_id, lock=True,
        )
        policy = await self._policy(type_config_id)

        if balance.remaining_quota < days and not policy.allow_negative_balance:
            raise InsufficientBalance(available=balance.remaining_quota, requested=days)

        balance.used_quota += days
        await self.db.flush()
        return balance

    async def release(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
        days: int,
    ) -> LeaveBalance:
        """Decrement ``used_quota`` by ``days``, clamped at zero."""
        balance = await self.balances.find(employee_id, period_id, type_config_id, lock=True)
        if balance is None:
            raise NotFoundException(
                "LeaveBalance", f"{employee_id}/{period_id}/{type_config_id}",
            )

        new_used = balance.used_quota - days
        if new_used < 0:
            logger.warning(
                "Balance drift on release for employee %s type %s: used=%d, releasing=%d; "
                "clamping at 0",
                employee_id, type_config_id, balance.used_quota, days,
            )
            new_used = 0
        balance.used_quota = new_used
        await self.db.flush()
        return balance

    async def query(
        self,
        employee_id: uuid.UUID,
        period_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        if period_id is None:
            period_id = (await LeavePeriodService.get_active_period(self.db)).id
        rows = await self.balances.list_for_employee(employee_id, period_id)
        rows.sort(key=lambda b: b.leave_type.type.value)
        return [LeaveBalanceOut.from_balance(b) for b in rows]

    async def summarize(
        self,
        employee_id: uuid.UUID,
        period_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceSummary:
        if period_id is None:
            period_id = (await LeavePeriodService.get_active_period(self.db)).id
        balances = await self.query(employee_id, period_id)
        return LeaveBalanceSummary(
            employee_id=employee_id,
            leave_period_id=period_id,
            total_quota=sum(b.total_quota for b in balances),
            used_quota=sum(b.used_quota for b in balances),
            remaining_quota=sum(b.remaining_quota for b in balances),
            balances=balances,
        )

    async def reserved_days(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
    ) -> int:
        """Days held by PENDING, MANAGER_APPROVED and APPROVED requests."""
        return await self.requests.reserved_days(employee_id, period_id, type_config_id)
