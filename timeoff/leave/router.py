"""Leave router: balances, submit, approve/reject, cancel, approval queues.

All endpoints require authentication. Approval endpoints are open to any
authenticated caller: the workflow decides the level they act at and whether
they are the manager the request is routed to.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import (
    Principal,
    get_current_principal,
    get_tenant,
    get_tenant_db,
    require_role,
)
from timeoff.common.constants import LeaveRequestStatus, UserRole
from timeoff.common.pagination import PaginatedResponse, PaginationParams
from timeoff.common.rate_limit import submit_limit
from timeoff.database import TenantContext
from timeoff.directory.service import SqlEmployeeDirectory
from timeoff.leave.ledger import BalanceLedger
from timeoff.leave.schemas import (
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveBalanceSummary,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestDetailOut,
    LeaveRequestOut,
)
from timeoff.leave.service import LeaveWorkflowService
from timeoff.notifications.service import NotificationService

balances_router = APIRouter()
requests_router = APIRouter()


def get_workflow(tenant: TenantContext = Depends(get_tenant)) -> LeaveWorkflowService:
    return LeaveWorkflowService(
        tenant,
        directory=SqlEmployeeDirectory(),
        notifier=NotificationService(tenant),
    )


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


@balances_router.get("/my", response_model=list[LeaveBalanceOut])
async def my_balances(
    period_id: Optional[uuid.UUID] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Balances of the caller for a period (the active one by default)."""
    return await BalanceLedger(db).query(principal.employee_id, period_id)


@balances_router.get("/my/summary", response_model=LeaveBalanceSummary)
async def my_balance_summary(
    period_id: Optional[uuid.UUID] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await BalanceLedger(db).summarize(principal.employee_id, period_id)


@balances_router.get("/employee/{employee_id}", response_model=list[LeaveBalanceOut])
async def employee_balances(
    employee_id: uuid.UUID,
    period_id: Optional[uuid.UUID] = Query(None),
    principal: Principal = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await BalanceLedger(db).query(employee_id, period_id)


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


# ── POST / ──────────────────────────────────────────────────────────

@requests_router.post("/", response_model=LeaveRequestOut, status_code=201)
@submit_limit
async def submit_request(
    request: Request,
    body: LeaveRequestCreate,
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    """Submit a leave request. Validates dates, balance, notice, cap and overlap."""
    return await workflow.submit_request(principal.employee_id, body)


# ── GET /my ─────────────────────────────────────────────────────────

@requests_router.get("/my", response_model=PaginatedResponse[LeaveRequestOut])
async def my_requests(
    status: Optional[LeaveRequestStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return await workflow.list_employee_requests(
        principal.employee_id,
        status,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /pending (declared before /{request_id}) ───────────────────

@requests_router.get("/pending", response_model=PaginatedResponse[LeaveRequestOut])
async def pending_requests(
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    """Requests waiting on the caller, oldest first."""
    return await workflow.list_pending_for_approver(
        principal.employee_id,
        principal.role,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@requests_router.get("/{request_id}", response_model=LeaveRequestDetailOut)
async def get_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return await workflow.get_request(request_id, principal.employee_id, principal.role)


# ── PATCH /{id}/approve | reject | cancel ──────────────────────────

@requests_router.patch("/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return await workflow.approve(
        request_id, principal.employee_id, principal.role, body.comments,
    )


@requests_router.patch("/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return await workflow.reject(
        request_id, principal.employee_id, principal.role, body.reason, body.comments,
    )


@requests_router.patch("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return await workflow.cancel(request_id, principal.employee_id)
