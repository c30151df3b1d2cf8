"""Balance ledger tests: initialization, reserve, release, queries."""

from __future__ import annotations

import logging
import uuid
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import LeaveType
from timeoff.common.exceptions import (
    InsufficientBalance,
    NoActivePeriod,
    NotFoundException,
    ValidationFailed,
)
from timeoff.leave.ledger import BalanceLedger
from tests.conftest import seed_employee, seed_leave_type, seed_period


async def _setup(db: AsyncSession, **type_kwargs):
    emp = await seed_employee(db)
    period = await seed_period(db)
    config = await seed_leave_type(db, period.id, **type_kwargs)
    return emp, period, config


class TestGetOrInitialize:

    async def test_creates_from_default_quota(self, db: AsyncSession):
        emp, period, config = await _setup(db, default_quota=15)
        balance = await BalanceLedger(db).get_or_initialize(emp.id, config.id, period.id)
        assert balance.total_quota == 15
        assert balance.used_quota == 0
        assert balance.remaining_quota == 15

    async def test_is_idempotent(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        ledger = BalanceLedger(db)
        first = await ledger.get_or_initialize(emp.id, config.id, period.id)
        second = await ledger.get_or_initialize(emp.id, config.id, period.id, custom_quota=99)
        assert first.id == second.id
        assert second.total_quota == 12

    async def test_custom_quota(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        balance = await BalanceLedger(db).get_or_initialize(
            emp.id, config.id, period.id, custom_quota=3,
        )
        assert balance.total_quota == 3

    async def test_negative_custom_quota(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        with pytest.raises(ValidationFailed) as exc_info:
            await BalanceLedger(db).get_or_initialize(
                emp.id, config.id, period.id, custom_quota=-1,
            )
        assert exc_info.value.check == "custom_quota"

    async def test_defaults_to_active_period(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        balance = await BalanceLedger(db).get_or_initialize(emp.id, config.id)
        assert balance.leave_period_id == period.id

    async def test_no_active_period(self, db: AsyncSession):
        emp = await seed_employee(db)
        period = await seed_period(db, is_active=False)
        config = await seed_leave_type(db, period.id)
        with pytest.raises(NoActivePeriod):
            await BalanceLedger(db).get_or_initialize(emp.id, config.id)

    async def test_unknown_period(self, db: AsyncSession):
        emp, _, config = await _setup(db)
        with pytest.raises(NotFoundException):
            await BalanceLedger(db).get_or_initialize(emp.id, config.id, uuid.uuid4())

    async def test_type_from_another_period(self, db: AsyncSession):
        emp, period, _ = await _setup(db)
        other = await seed_period(
            db, name="Old", start_date=date(2020, 1, 1), end_date=date(2020, 12, 31),
        )
        old_config = await seed_leave_type(db, other.id)
        with pytest.raises(ValidationFailed) as exc_info:
            await BalanceLedger(db).get_or_initialize(emp.id, old_config.id, period.id)
        assert exc_info.value.check == "leave_type_period"


class TestReserveRelease:

    async def test_reserve_increments_used(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        balance = await BalanceLedger(db).reserve(emp.id, period.id, config.id, 5)
        assert balance.used_quota == 5
        assert balance.remaining_quota == 7

    async def test_reserve_exact_remaining(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        balance = await BalanceLedger(db).reserve(emp.id, period.id, config.id, 12)
        assert balance.remaining_quota == 0

    async def test_reserve_insufficient(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        ledger = BalanceLedger(db)
        await ledger.reserve(emp.id, period.id, config.id, 10)
        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger.reserve(emp.id, period.id, config.id, 3)
        assert exc_info.value.available == 2

        balance = await ledger.get_or_initialize(emp.id, config.id, period.id)
        assert balance.used_quota == 10

    async def test_reserve_negative_allowed(self, db: AsyncSession):
        emp, period, config = await _setup(db, allow_negative_balance=True, default_quota=2)
        balance = await BalanceLedger(db).reserve(emp.id, period.id, config.id, 5)
        assert balance.remaining_quota == -3

    @pytest.mark.parametrize("days", [0, -2])
    async def test_reserve_requires_positive_days(self, db: AsyncSession, days):
        emp, period, config = await _setup(db)
        with pytest.raises(ValidationFailed):
            await BalanceLedger(db).reserve(emp.id, period.id, config.id, days)

    async def test_release_decrements_used(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        ledger = BalanceLedger(db)
        await ledger.reserve(emp.id, period.id, config.id, 5)
        balance = await ledger.release(emp.id, period.id, config.id, 3)
        assert balance.used_quota == 2

    async def test_release_clamps_at_zero(self, db: AsyncSession, caplog):
        emp, period, config = await _setup(db)
        ledger = BalanceLedger(db)
        await ledger.reserve(emp.id, period.id, config.id, 2)
        with caplog.at_level(logging.WARNING, logger="timeoff.leave.ledger"):
            balance = await ledger.release(emp.id, period.id, config.id, 5)
        assert balance.used_quota == 0
        assert "Balance drift" in caplog.text

    async def test_release_without_balance(self, db: AsyncSession):
        emp, period, config = await _setup(db)
        with pytest.raises(NotFoundException):
            await BalanceLedger(db).release(emp.id, period.id, config.id, 1)


class TestQuery:

    async def test_query_sorted_by_type(self, db: AsyncSession):
        emp, period, annual = await _setup(db)
        sick = await seed_leave_type(db, period.id, type=LeaveType.SICK, name="Sick", default_quota=7)
        ledger = BalanceLedger(db)
        await ledger.get_or_initialize(emp.id, sick.id, period.id)
        await ledger.reserve(emp.id, period.id, annual.id, 4)

        rows = await ledger.query(emp.id)
        assert [r.leave_type for r in rows] == [LeaveType.ANNUAL, LeaveType.SICK]
        assert rows[0].remaining_quota == 8
        assert rows[0].leave_type_name == "Annual Leave"
        assert rows[1].period_end == period.end_date

    async def test_query_empty(self, db: AsyncSession):
        emp, period, _ = await _setup(db)
        assert await BalanceLedger(db).query(emp.id, period.id) == []

    async def test_summary_totals(self, db: AsyncSession):
        emp, period, annual = await _setup(db)
        sick = await seed_leave_type(db, period.id, type=LeaveType.SICK, name="Sick", default_quota=7)
        ledger = BalanceLedger(db)
        await ledger.reserve(emp.id, period.id, annual.id, 2)
        await ledger.reserve(emp.id, period.id, sick.id, 1)

        summary = await ledger.summarize(emp.id)
        assert summary.leave_period_id == period.id
        assert summary.total_quota == 19
        assert summary.used_quota == 3
        assert summary.remaining_quota == 16
        assert len(summary.balances) == 2
