"""Leave period and leave type routers.

Reads are open to any authenticated user; writes require HR.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import (
    Principal,
    get_current_principal,
    get_tenant_db,
    require_role,
)
from timeoff.common.constants import UserRole
from timeoff.common.pagination import PaginatedResponse, PaginationParams
from timeoff.periods.schemas import (
    LeavePeriodCreate,
    LeavePeriodOut,
    LeavePeriodUpdate,
    LeaveTypeConfigCreate,
    LeaveTypeConfigOut,
    LeaveTypeConfigUpdate,
    SetupDefaultTypesOut,
)
from timeoff.periods.service import (
    LeavePeriodService,
    LeaveTypeService,
    setup_default_leave_types,
)

periods_router = APIRouter()
types_router = APIRouter()

_hr_only = require_role(UserRole.hr_admin)


# ═════════════════════════════════════════════════════════════════════
# Leave periods
# ═════════════════════════════════════════════════════════════════════


@periods_router.post("/", response_model=LeavePeriodOut, status_code=201)
async def create_period(
    body: LeavePeriodCreate,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeavePeriodService.create_period(db, body, created_by=principal.employee_id)


@periods_router.get("/", response_model=PaginatedResponse[LeavePeriodOut])
async def list_periods(
    active_only: bool = Query(False),
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeavePeriodService.list_periods(
        db,
        active_only=active_only,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /active (declared before /{period_id}) ─────────────────────

@periods_router.get("/active", response_model=LeavePeriodOut)
async def get_active_period(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeavePeriodService.get_active_period(db)


@periods_router.get("/{period_id}", response_model=LeavePeriodOut)
async def get_period(
    period_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeavePeriodService.get_period(db, period_id)


@periods_router.patch("/{period_id}", response_model=LeavePeriodOut)
async def update_period(
    period_id: uuid.UUID,
    body: LeavePeriodUpdate,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeavePeriodService.update_period(
        db, period_id, body, actor_id=principal.employee_id,
    )


@periods_router.delete("/{period_id}", status_code=204)
async def delete_period(
    period_id: uuid.UUID,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    await LeavePeriodService.delete_period(db, period_id, actor_id=principal.employee_id)
    return Response(status_code=204)


@periods_router.post("/{period_id}/setup-default-types", response_model=SetupDefaultTypesOut)
async def setup_default_types(
    period_id: uuid.UUID,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Seed the standard leave types into a period (existing types are kept)."""
    created = await setup_default_leave_types(db, period_id)
    return SetupDefaultTypesOut(period_id=period_id, created=created)


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


@types_router.post("/", response_model=LeaveTypeConfigOut, status_code=201)
async def create_type(
    body: LeaveTypeConfigCreate,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeaveTypeService.create_type(db, body, actor_id=principal.employee_id)


@types_router.get("/", response_model=list[LeaveTypeConfigOut])
async def list_types(
    period_id: Optional[uuid.UUID] = Query(None),
    active_only: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeaveTypeService.list_types(db, period_id, active_only=active_only)


@types_router.get("/{type_id}", response_model=LeaveTypeConfigOut)
async def get_type(
    type_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeaveTypeService.get_type(db, type_id)


@types_router.patch("/{type_id}", response_model=LeaveTypeConfigOut)
async def update_type(
    type_id: uuid.UUID,
    body: LeaveTypeConfigUpdate,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await LeaveTypeService.update_type(db, type_id, body, actor_id=principal.employee_id)


@types_router.delete("/{type_id}", status_code=204)
async def delete_type(
    type_id: uuid.UUID,
    principal: Principal = Depends(_hr_only),
    db: AsyncSession = Depends(get_tenant_db),
):
    await LeaveTypeService.delete_type(db, type_id, actor_id=principal.employee_id)
    return Response(status_code=204)
