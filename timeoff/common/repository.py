"""Generic async repository base.

Repositories never commit or roll back; the caller owns the transaction.
"""

from __future__ import annotations

import uuid
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    model: Type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _base_select(self) -> Select[tuple[ModelType]]:
        return select(self.model)

    async def get(self, id_: uuid.UUID) -> Optional[ModelType]:
        return await self.session.get(self.model, id_)

    async def get_for_update(self, id_: uuid.UUID) -> Optional[ModelType]:
        """Load a row with ``SELECT ... FOR UPDATE`` and refresh any cached copy."""
        stmt = (
            self._base_select()
            .where(self.model.id == id_)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add(self, obj: ModelType) -> ModelType:
        self.session.add(obj)
        # flush to populate defaults and surface constraint errors early
        await self.session.flush()
        return obj

    async def update(self, obj: ModelType, values: dict[str, Any]) -> ModelType:
        for key, value in values.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    async def delete(self, obj: ModelType) -> None:
        await self.session.delete(obj)
        await self.session.flush()
