"""Leave workflow orchestrator: submit, approve, reject, cancel, queues.

Each public operation runs as one transaction through ``run_in_transaction``:
the request row (and for submissions the employee row) is locked first, then
the balance row, then state is re-read, validated and written. Notifications
are dispatched only after the transaction has committed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.audit import create_audit_entry
from timeoff.common.constants import (
    HR_ROLES,
    ApprovalStatus,
    ApproverType,
    LeaveAction,
    LeaveEvent,
    LeaveRequestStatus,
    UserRole,
)
from timeoff.common.exceptions import (
    DuplicateApproval,
    ForbiddenException,
    NotFoundException,
)
from timeoff.common.pagination import PaginatedResponse, build_meta, paginate_query
from timeoff.config import settings
from timeoff.database import TenantContext, run_in_transaction
from timeoff.directory.service import EmployeeDirectory, SqlEmployeeDirectory
from timeoff.leave.ledger import BalanceLedger
from timeoff.leave.models import LeaveApproval, LeaveRequest
from timeoff.leave.repository import LeaveApprovalRepository, LeaveRequestRepository
from timeoff.leave.schemas import (
    LeaveRequestCreate,
    LeaveRequestDetailOut,
    LeaveRequestOut,
)
from timeoff.leave.validation import ExistingRequest, SubmissionDraft, validate_submission
from timeoff.leave.workflow import (
    Approver,
    ManagerApprover,
    acting_approver,
    approver_for,
    releases_reservation,
    transition,
)
from timeoff.notifications.service import Notifier, dispatch_notification
from timeoff.periods.service import LeavePeriodService, LeaveTypeService

logger = logging.getLogger(__name__)

# (event, payload) pairs collected inside the transaction, sent after commit
_Outbox = list[tuple[LeaveEvent, dict[str, Any]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now().date()


def _payload(request: LeaveRequest, recipient_id: Optional[uuid.UUID], **extra: Any) -> dict[str, Any]:
    payload = {
        "request_id": request.id,
        "employee_id": request.employee_id,
        "recipient_id": recipient_id,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "total_days": request.total_days,
        "status": request.status.value,
    }
    payload.update(extra)
    return payload


class LeaveWorkflowService:
    """Entry point for the leave request lifecycle of one tenant.

    ``snapshot_routing`` selects whether approval routing uses the manager
    captured at submission (default) or the directory's current answer.
    """

    def __init__(
        self,
        tenant: TenantContext,
        directory: Optional[EmployeeDirectory] = None,
        notifier: Optional[Notifier] = None,
        *,
        snapshot_routing: Optional[bool] = None,
    ) -> None:
        self.tenant = tenant
        self.directory = directory or SqlEmployeeDirectory()
        self.notifier = notifier
        self.snapshot_routing = (
            settings.LEAVE_ROUTING_SNAPSHOT if snapshot_routing is None else snapshot_routing
        )

    async def _dispatch(self, outbox: _Outbox) -> None:
        for event, payload in outbox:
            await dispatch_notification(self.notifier, event, payload)

    # ═════════════════════════════════════════════════════════════════
    # Submit
    # ═════════════════════════════════════════════════════════════════

    async def submit_request(
        self,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Validate, reserve the days and create the request in one transaction.

        Raises ValidationFailed, InsufficientBalance, OverlappingRequest,
        AdvanceNoticeViolation, MaxConsecutiveDaysExceeded or NoActivePeriod.
        """
        outbox: _Outbox = []

        async def work(db: AsyncSession) -> LeaveRequestOut:
            outbox.clear()  # a retried attempt starts over
            requests = LeaveRequestRepository(db)
            ledger = BalanceLedger(db)

            await requests.lock_employee(employee_id)
            manager_id = await self.directory.resolve_manager(db, employee_id)
            period = await LeavePeriodService.get_active_period(db)
            policy = await LeaveTypeService.get_type(db, data.leave_type_config_id)
            draft = SubmissionDraft(
                employee_id=employee_id,
                leave_type_config_id=policy.id,
                start_date=data.start_date,
                end_date=data.end_date,
                reason=data.reason,
            )

            # Balance is read under lock so the gate sees the same numbers
            # the reservation will use.
            balance = None
            if policy.leave_period_id == period.id:
                balance = await ledger.get_or_initialize(
                    employee_id, policy.id, period.id, lock=True,
                )
            existing = await requests.find_overlapping(
                employee_id, data.start_date, data.end_date,
            )
            total_days = validate_submission(
                draft,
                policy=policy,
                period=period,
                remaining=balance.remaining_quota if balance is not None else 0,
                existing=[ExistingRequest(r.id, r.start_date, r.end_date) for r in existing],
                today=_today(),
            )

            await ledger.reserve(employee_id, period.id, policy.id, total_days)

            now = _now()
            request = LeaveRequest(
                employee_id=employee_id,
                leave_period_id=period.id,
                leave_type_config_id=policy.id,
                start_date=data.start_date,
                end_date=data.end_date,
                total_days=total_days,
                reason=data.reason,
                status=LeaveRequestStatus.PENDING,
                submitted_at=now,
                requires_manager_approval=manager_id is not None,
                manager_id=manager_id,
                emergency_contact=data.emergency_contact,
                handover_notes=data.handover_notes,
            )
            if not policy.requires_approval:
                request.status = LeaveRequestStatus.APPROVED
                request.finalized_at = now
            await requests.add(request)

            await create_audit_entry(
                db,
                action="submit",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=employee_id,
                new_values={
                    "status": request.status.value,
                    "leave_type": policy.type.value,
                    "start_date": request.start_date.isoformat(),
                    "end_date": request.end_date.isoformat(),
                    "total_days": total_days,
                },
            )

            if request.status == LeaveRequestStatus.APPROVED:
                outbox.append((LeaveEvent.approved, _payload(request, employee_id)))
            else:
                outbox.append((LeaveEvent.submitted, _payload(request, manager_id)))
            return LeaveRequestOut.model_validate(request)

        result = await run_in_transaction(self.tenant, work)
        logger.info(
            "Leave request %s submitted by %s: %d day(s), status %s",
            result.id, employee_id, result.total_days, result.status.value,
        )
        await self._dispatch(outbox)
        return result

    # ═════════════════════════════════════════════════════════════════
    # Approve / reject
    # ═════════════════════════════════════════════════════════════════

    async def _load_for_action(self, db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        request = await LeaveRequestRepository(db).get_for_update(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return request

    async def _routing(
        self, db: AsyncSession, request: LeaveRequest,
    ) -> tuple[bool, Optional[uuid.UUID]]:
        """(requires_manager_approval, manager_id) for the next approval step."""
        if self.snapshot_routing:
            return request.requires_manager_approval, request.manager_id
        manager_id = await self.directory.resolve_manager(db, request.employee_id)
        return manager_id is not None, manager_id

    async def _decide(
        self,
        db: AsyncSession,
        request: LeaveRequest,
        approver: Approver,
        action: LeaveAction,
    ) -> tuple[LeaveRequestStatus, Approver]:
        """Check the action and return the new status with the approver at the level they act at."""
        if approver.approver_id == request.employee_id:
            raise ForbiddenException("You cannot approve or reject your own leave request.")

        requires_manager, manager_id = await self._routing(db, request)
        approver = acting_approver(approver, request.status, requires_manager, manager_id)
        new_status = transition(request.status, action, approver.level, requires_manager)
        approver.authorize(request.id, manager_id)

        if await LeaveApprovalRepository(db).find_for_level(request.id, approver.level):
            raise DuplicateApproval(str(request.id), approver.level.value)
        return new_status, approver

    async def _record_approval(
        self,
        db: AsyncSession,
        request: LeaveRequest,
        approver: Approver,
        status: ApprovalStatus,
        comments: Optional[str],
        now: datetime,
    ) -> None:
        await LeaveApprovalRepository(db).add(
            LeaveApproval(
                leave_request_id=request.id,
                approver_id=approver.approver_id,
                approver_type=approver.level,
                status=status,
                comments=comments,
                approved_at=now if status == ApprovalStatus.APPROVED else None,
                created_at=now,
            )
        )

    async def approve(
        self,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        role: UserRole,
        comments: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Advance the request one approval level."""
        approver = approver_for(approver_id, role)
        acting = approver
        outbox: _Outbox = []

        async def work(db: AsyncSession) -> LeaveRequestOut:
            nonlocal acting
            outbox.clear()  # a retried attempt starts over
            request = await self._load_for_action(db, request_id)
            new_status, acting = await self._decide(db, request, approver, LeaveAction.approve)

            now = _now()
            if acting.level == ApproverType.MANAGER:
                request.manager_comments = comments
                request.manager_approved_at = now
            else:
                request.hr_comments = comments
                request.hr_approved_at = now
            request.status = new_status
            if new_status == LeaveRequestStatus.APPROVED:
                request.finalized_at = now

            await self._record_approval(db, request, acting, ApprovalStatus.APPROVED, comments, now)
            await db.flush()

            if new_status == LeaveRequestStatus.MANAGER_APPROVED:
                outbox.append((LeaveEvent.manager_approved, _payload(request, None)))
            else:
                outbox.append((LeaveEvent.approved, _payload(request, request.employee_id)))
            return LeaveRequestOut.model_validate(request)

        result = await run_in_transaction(self.tenant, work)
        logger.info(
            "Leave request %s approved at %s level by %s: status %s",
            request_id, acting.level.value, approver_id, result.status.value,
        )
        await self._dispatch(outbox)
        return result

    async def reject(
        self,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        role: UserRole,
        reason: str,
        comments: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Reject the request and release its reserved days."""
        approver = approver_for(approver_id, role)
        acting = approver
        outbox: _Outbox = []

        async def work(db: AsyncSession) -> LeaveRequestOut:
            nonlocal acting
            outbox.clear()  # a retried attempt starts over
            request = await self._load_for_action(db, request_id)
            new_status, acting = await self._decide(db, request, approver, LeaveAction.reject)

            await BalanceLedger(db).release(
                request.employee_id,
                request.leave_period_id,
                request.leave_type_config_id,
                request.total_days,
            )

            now = _now()
            if acting.level == ApproverType.MANAGER:
                request.manager_comments = comments
            else:
                request.hr_comments = comments
            request.status = new_status
            request.rejection_reason = reason
            request.finalized_at = now

            await self._record_approval(db, request, acting, ApprovalStatus.REJECTED, comments, now)
            await db.flush()

            outbox.append(
                (LeaveEvent.rejected, _payload(request, request.employee_id, reason=reason))
            )
            return LeaveRequestOut.model_validate(request)

        result = await run_in_transaction(self.tenant, work)
        logger.info(
            "Leave request %s rejected at %s level by %s; %d day(s) released",
            request_id, acting.level.value, approver_id, result.total_days,
        )
        await self._dispatch(outbox)
        return result

    # ═════════════════════════════════════════════════════════════════
    # Cancel
    # ═════════════════════════════════════════════════════════════════

    async def cancel(
        self,
        request_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Owner withdraws a PENDING request; the reserved days are released."""
        outbox: _Outbox = []

        async def work(db: AsyncSession) -> LeaveRequestOut:
            outbox.clear()  # a retried attempt starts over
            request = await self._load_for_action(db, request_id)
            if request.employee_id != employee_id:
                raise ForbiddenException("You can only cancel your own leave requests.")

            requires_manager, manager_id = await self._routing(db, request)
            new_status = transition(request.status, LeaveAction.cancel, None, requires_manager)
            if releases_reservation(new_status):
                await BalanceLedger(db).release(
                    request.employee_id,
                    request.leave_period_id,
                    request.leave_type_config_id,
                    request.total_days,
                )

            old_status = request.status
            request.status = new_status
            request.cancelled_at = _now()
            await db.flush()

            await create_audit_entry(
                db,
                action="cancel",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=employee_id,
                old_values={"status": old_status.value},
                new_values={"status": new_status.value},
            )
            outbox.append((LeaveEvent.cancelled, _payload(request, manager_id)))
            return LeaveRequestOut.model_validate(request)

        result = await run_in_transaction(self.tenant, work)
        logger.info(
            "Leave request %s cancelled by %s; %d day(s) released",
            request_id, employee_id, result.total_days,
        )
        await self._dispatch(outbox)
        return result

    # ═════════════════════════════════════════════════════════════════
    # Reads
    # ═════════════════════════════════════════════════════════════════

    async def list_pending_for_approver(
        self,
        approver_id: uuid.UUID,
        role: UserRole,
        *,
        page: int = 1,
        page_size: int = 50,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """Requests waiting on this approver, oldest submission first."""
        approver = approver_for(approver_id, role)

        async def work(db: AsyncSession) -> PaginatedResponse[LeaveRequestOut]:
            repo = LeaveRequestRepository(db)
            report_ids = (
                None if self.snapshot_routing
                else await self.directory.direct_reports(db, approver_id)
            )
            if isinstance(approver, ManagerApprover):
                query = repo.manager_queue_query(approver_id, report_ids=report_ids)
            else:
                unmanaged = (
                    None if self.snapshot_routing
                    else await self.directory.employees_without_manager(db)
                )
                # HR staff also sign the manager level for their own reports.
                query = repo.hr_queue_query(
                    unmanaged_ids=unmanaged,
                    manager_id=approver_id,
                    report_ids=report_ids,
                )

            rows, total = await paginate_query(db, query, page, page_size)
            return PaginatedResponse[LeaveRequestOut](
                data=[LeaveRequestOut.model_validate(r) for r in rows],
                meta=build_meta(page, page_size, total),
            )

        return await run_in_transaction(self.tenant, work)

    async def get_request(
        self,
        request_id: uuid.UUID,
        viewer_id: uuid.UUID,
        viewer_role: UserRole,
    ) -> LeaveRequestDetailOut:
        """Owner, the routed manager and HR may read a request and its approval trail."""

        async def work(db: AsyncSession) -> LeaveRequestDetailOut:
            request = await LeaveRequestRepository(db).get_with_approvals(request_id)
            if request is None:
                raise NotFoundException("LeaveRequest", str(request_id))
            if (
                viewer_role not in HR_ROLES
                and request.employee_id != viewer_id
                and request.manager_id != viewer_id
            ):
                raise ForbiddenException("You can only view your own leave requests.")
            return LeaveRequestDetailOut.model_validate(request)

        return await run_in_transaction(self.tenant, work)

    async def list_employee_requests(
        self,
        employee_id: uuid.UUID,
        status: Optional[LeaveRequestStatus] = None,
        *,
        page: int = 1,
        page_size: int = 50,
    ) -> PaginatedResponse[LeaveRequestOut]:
        async def work(db: AsyncSession) -> PaginatedResponse[LeaveRequestOut]:
            query = LeaveRequestRepository(db).employee_query(employee_id, status)
            rows, total = await paginate_query(db, query, page, page_size)
            return PaginatedResponse[LeaveRequestOut](
                data=[LeaveRequestOut.model_validate(r) for r in rows],
                meta=build_meta(page, page_size, total),
            )

        return await run_in_transaction(self.tenant, work)
