"""Generic pagination utilities for SQLAlchemy async queries."""


import math
from typing import Any, Generic, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends(PaginationParams)`` on any list endpoint."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
        page_size: int = Query(
            default=DEFAULT_PAGE_SIZE,
            ge=1,
            le=MAX_PAGE_SIZE,
            description=f"Items per page (max {MAX_PAGE_SIZE})",
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ── Pydantic response models ───────────────────────────────────────

class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard envelope: ``{"data": [...], "meta": {...}}``."""

    data: Sequence[T]
    meta: PaginationMeta


def build_meta(page: int, page_size: int, total: int) -> PaginationMeta:
    total_pages = math.ceil(total / page_size) if total else 0
    return PaginationMeta(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate_query(
    session: AsyncSession,
    query: Select,
    page: int,
    page_size: int,
) -> tuple[list[Any], int]:
    """
    Execute *query* with LIMIT/OFFSET and return ``(rows, total)``.

    The caller is expected to have applied ORDER BY already; it is stripped
    from the count query.
    """
    count_q = query.with_only_columns(
        func.count(), maintain_column_froms=True,
    ).order_by(None)
    total: int = (await session.execute(count_q)).scalar_one()

    rows = (
        await session.execute(
            query.offset((page - 1) * page_size).limit(page_size)
        )
    ).scalars().all()

    return list(rows), total
