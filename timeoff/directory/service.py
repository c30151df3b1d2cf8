"""Employee directory lookups used by the leave workflow."""

from __future__ import annotations

import uuid
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.exceptions import NotFoundException
from timeoff.directory.models import Employee


class EmployeeDirectory(Protocol):
    """Read access to the reporting line, queried inside the caller's transaction."""

    async def resolve_manager(
        self, db: AsyncSession, employee_id: uuid.UUID,
    ) -> Optional[uuid.UUID]:
        ...

    async def direct_reports(
        self, db: AsyncSession, manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        ...

    async def employees_without_manager(self, db: AsyncSession) -> list[uuid.UUID]:
        ...


class SqlEmployeeDirectory:
    """Directory backed by the tenant's ``employees`` table.

    Deactivated employees keep their place in the reporting line so open
    requests they filed can still be decided and show up in the queues.
    """

    async def resolve_manager(
        self, db: AsyncSession, employee_id: uuid.UUID,
    ) -> Optional[uuid.UUID]:
        """Return the employee's current manager id, or None when they have none."""
        result = await db.execute(
            select(Employee.id, Employee.manager_id).where(Employee.id == employee_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundException("Employee", str(employee_id))
        return row.manager_id

    async def direct_reports(
        self, db: AsyncSession, manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(Employee.manager_id == manager_id)
        )
        return list(result.scalars().all())

    async def employees_without_manager(self, db: AsyncSession) -> list[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(Employee.manager_id.is_(None))
        )
        return list(result.scalars().all())
