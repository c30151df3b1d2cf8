"""Period & policy registry: leave periods and per-period leave-type configs.

Reference data consumed by the balance ledger and the leave workflow. All
methods take the caller's session and never commit.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.audit import create_audit_entry
from timeoff.common.constants import LeaveType
from timeoff.common.exceptions import (
    ConflictError,
    NoActivePeriod,
    NotFoundException,
    OverlappingPeriod,
    ResourceInUse,
    ValidationFailed,
)
from timeoff.common.pagination import PaginatedResponse, build_meta, paginate_query
from timeoff.leave.repository import LeaveBalanceRepository, LeaveRequestRepository
from timeoff.periods.models import LeavePeriod, LeaveTypeConfig
from timeoff.periods.repository import LeavePeriodRepository, LeaveTypeConfigRepository
from timeoff.periods.schemas import (
    LeavePeriodCreate,
    LeavePeriodOut,
    LeavePeriodUpdate,
    LeaveTypeConfigCreate,
    LeaveTypeConfigUpdate,
)

logger = logging.getLogger(__name__)


# Seeded by setup_default_leave_types:
# (type, name, quota, max consecutive, notice days, carry forward)
DEFAULT_LEAVE_TYPES: list[tuple[LeaveType, str, int, int, int, Optional[int]]] = [
    (LeaveType.ANNUAL, "Annual Leave", 12, 14, 3, 6),
    (LeaveType.SICK, "Sick Leave", 12, 7, 0, None),
    (LeaveType.EMERGENCY, "Emergency Leave", 2, 2, 0, None),
    (LeaveType.MATERNITY, "Maternity Leave", 90, 90, 30, None),
    (LeaveType.PATERNITY, "Paternity Leave", 14, 14, 14, None),
]


def _snapshot(obj: Any, fields: list[str]) -> dict[str, Any]:
    """JSON-safe dict of selected attributes for the audit trail."""
    out: dict[str, Any] = {}
    for name in fields:
        value = getattr(obj, name)
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif isinstance(value, uuid.UUID):
            value = str(value)
        elif hasattr(value, "value"):
            value = value.value
        out[name] = value
    return out


_PERIOD_FIELDS = ["name", "start_date", "end_date", "is_active", "description"]


# ═════════════════════════════════════════════════════════════════════
# Leave periods
# ═════════════════════════════════════════════════════════════════════


class LeavePeriodService:
    """Async CRUD for leave periods."""

    @staticmethod
    async def create_period(
        db: AsyncSession,
        data: LeavePeriodCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> LeavePeriod:
        if data.start_date >= data.end_date:
            raise ValidationFailed("period_dates", "start_date must be before end_date.")

        repo = LeavePeriodRepository(db)
        if await repo.find_overlapping(data.start_date, data.end_date):
            raise OverlappingPeriod(data.start_date, data.end_date)

        period = await repo.add(LeavePeriod(**data.model_dump(), created_by=created_by))
        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_period",
            entity_id=period.id,
            actor_id=created_by,
            new_values=_snapshot(period, _PERIOD_FIELDS),
        )
        logger.info("Created leave period %s (%s..%s)", period.id, period.start_date, period.end_date)
        return period

    @staticmethod
    async def list_periods(
        db: AsyncSession,
        *,
        active_only: bool = False,
        page: int = 1,
        page_size: int = 50,
    ) -> PaginatedResponse[LeavePeriodOut]:
        query = LeavePeriodRepository(db).list_query(active_only=active_only)
        rows, total = await paginate_query(db, query, page, page_size)
        return PaginatedResponse[LeavePeriodOut](
            data=[LeavePeriodOut.model_validate(p) for p in rows],
            meta=build_meta(page, page_size, total),
        )

    @staticmethod
    async def get_period(db: AsyncSession, period_id: uuid.UUID) -> LeavePeriod:
        period = await LeavePeriodRepository(db).get(period_id)
        if period is None:
            raise NotFoundException("LeavePeriod", str(period_id))
        return period

    @staticmethod
    async def get_active_period(db: AsyncSession) -> LeavePeriod:
        period = await LeavePeriodRepository(db).find_active()
        if period is None:
            raise NoActivePeriod()
        return period

    @staticmethod
    async def update_period(
        db: AsyncSession,
        period_id: uuid.UUID,
        data: LeavePeriodUpdate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeavePeriod:
        repo = LeavePeriodRepository(db)
        period = await LeavePeriodService.get_period(db, period_id)
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }

        start = changes.get("start_date", period.start_date)
        end = changes.get("end_date", period.end_date)
        if "start_date" in changes or "end_date" in changes:
            if start >= end:
                raise ValidationFailed("period_dates", "start_date must be before end_date.")
            if await repo.find_overlapping(start, end, exclude_id=period.id):
                raise OverlappingPeriod(start, end)

        old_values = _snapshot(period, _PERIOD_FIELDS)
        await repo.update(period, changes)
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_period",
            entity_id=period.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=_snapshot(period, _PERIOD_FIELDS),
        )
        return period

    @staticmethod
    async def delete_period(
        db: AsyncSession,
        period_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        period = await LeavePeriodService.get_period(db, period_id)
        if (
            await LeaveBalanceRepository(db).exists_for_period(period_id)
            or await LeaveRequestRepository(db).exists_for_period(period_id)
        ):
            raise ResourceInUse("LeavePeriod", str(period_id))

        type_repo = LeaveTypeConfigRepository(db)
        for config in await type_repo.list_for_period(period_id):
            await type_repo.delete(config)

        old_values = _snapshot(period, _PERIOD_FIELDS)
        await LeavePeriodRepository(db).delete(period)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_period",
            entity_id=period_id,
            actor_id=actor_id,
            old_values=old_values,
        )
        logger.info("Deleted leave period %s", period_id)


# ═════════════════════════════════════════════════════════════════════
# Leave type configs
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeService:
    """Async CRUD for per-period leave-type policies."""

    @staticmethod
    async def create_type(
        db: AsyncSession,
        data: LeaveTypeConfigCreate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveTypeConfig:
        await LeavePeriodService.get_period(db, data.leave_period_id)

        repo = LeaveTypeConfigRepository(db)
        if await repo.find_by_type(data.leave_period_id, data.type):
            raise ConflictError("type", data.type.value)

        config = await repo.add(LeaveTypeConfig(**data.model_dump()))
        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_type_config",
            entity_id=config.id,
            actor_id=actor_id,
            new_values={"type": config.type.value, "default_quota": config.default_quota},
        )
        return config

    @staticmethod
    async def list_types(
        db: AsyncSession,
        period_id: Optional[uuid.UUID] = None,
        *,
        active_only: bool = False,
    ) -> list[LeaveTypeConfig]:
        return await LeaveTypeConfigRepository(db).list_for_period(
            period_id, active_only=active_only,
        )

    @staticmethod
    async def get_type(db: AsyncSession, type_id: uuid.UUID) -> LeaveTypeConfig:
        config = await LeaveTypeConfigRepository(db).get(type_id)
        if config is None:
            raise NotFoundException("LeaveTypeConfig", str(type_id))
        return config

    @staticmethod
    async def update_type(
        db: AsyncSession,
        type_id: uuid.UUID,
        data: LeaveTypeConfigUpdate,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveTypeConfig:
        config = await LeaveTypeService.get_type(db, type_id)
        nullable = {"description", "max_consecutive_days", "max_carry_forward"}
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k in nullable
        }
        await LeaveTypeConfigRepository(db).update(config, changes)
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_type_config",
            entity_id=config.id,
            actor_id=actor_id,
            new_values=_snapshot(config, list(changes)),
        )
        return config

    @staticmethod
    async def delete_type(
        db: AsyncSession,
        type_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        config = await LeaveTypeService.get_type(db, type_id)
        if (
            await LeaveBalanceRepository(db).exists_for_type(type_id)
            or await LeaveRequestRepository(db).exists_for_type(type_id)
        ):
            raise ResourceInUse("LeaveTypeConfig", str(type_id))

        await LeaveTypeConfigRepository(db).delete(config)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_type_config",
            entity_id=type_id,
            actor_id=actor_id,
            old_values={"type": config.type.value},
        )


async def setup_default_leave_types(
    db: AsyncSession,
    period_id: uuid.UUID,
) -> int:
    """Seed the standard leave types into a period. Existing types are kept.

    Returns the number of configs created.
    """
    await LeavePeriodService.get_period(db, period_id)
    repo = LeaveTypeConfigRepository(db)

    created = 0
    for leave_type, name, quota, max_days, notice, carry in DEFAULT_LEAVE_TYPES:
        if await repo.find_by_type(period_id, leave_type):
            continue
        await repo.add(
            LeaveTypeConfig(
                leave_period_id=period_id,
                type=leave_type,
                name=name,
                default_quota=quota,
                max_consecutive_days=max_days,
                advance_notice_days=notice,
                is_carry_forward=carry is not None,
                max_carry_forward=carry,
                requires_approval=True,
                allow_negative_balance=False,
                is_active=True,
            )
        )
        created += 1

    logger.info("Seeded %d default leave types into period %s", created, period_id)
    return created
