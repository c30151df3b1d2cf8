"""Typed repositories for balances, requests and approval records."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.orm import selectinload

from timeoff.common.constants import (
    RESERVING_STATUSES,
    ApproverType,
    LeaveRequestStatus,
)
from timeoff.common.repository import BaseRepository
from timeoff.directory.models import Employee
from timeoff.leave.models import LeaveApproval, LeaveBalance, LeaveRequest


class LeaveBalanceRepository(BaseRepository[LeaveBalance]):
    model = LeaveBalance

    def _by_key(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
    ) -> Select[tuple[LeaveBalance]]:
        return select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_period_id == period_id,
            LeaveBalance.leave_type_config_id == type_config_id,
        )

    async def find(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> Optional[LeaveBalance]:
        stmt = self._by_key(employee_id, period_id, type_config_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_employee(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
    ) -> list[LeaveBalance]:
        result = await self.session.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_period_id == period_id,
            )
            .options(
                selectinload(LeaveBalance.leave_type),
                selectinload(LeaveBalance.period),
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def exists_for_period(self, period_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(LeaveBalance.id).where(LeaveBalance.leave_period_id == period_id).limit(1)
        )
        return result.first() is not None

    async def exists_for_type(self, type_config_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(LeaveBalance.id)
            .where(LeaveBalance.leave_type_config_id == type_config_id)
            .limit(1)
        )
        return result.first() is not None


class LeaveRequestRepository(BaseRepository[LeaveRequest]):
    model = LeaveRequest

    async def lock_employee(self, employee_id: uuid.UUID) -> None:
        """Serialize submissions per employee so overlap checks see every request."""
        await self.session.execute(
            select(Employee.id).where(Employee.id == employee_id).with_for_update()
        )

    async def find_overlapping(
        self,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        statuses: Iterable[LeaveRequestStatus] = RESERVING_STATUSES,
    ) -> list[LeaveRequest]:
        result = await self.session.execute(
            select(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(list(statuses)),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
        )
        return list(result.scalars().all())

    async def reserved_days(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        type_config_id: uuid.UUID,
    ) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(LeaveRequest.total_days), 0)).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_period_id == period_id,
                LeaveRequest.leave_type_config_id == type_config_id,
                LeaveRequest.status.in_(list(RESERVING_STATUSES)),
            )
        )
        return int(result.scalar_one())

    async def get_with_approvals(self, request_id: uuid.UUID) -> Optional[LeaveRequest]:
        result = await self.session.execute(
            self._base_select()
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.approvals))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def exists_for_period(self, period_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(LeaveRequest.id).where(LeaveRequest.leave_period_id == period_id).limit(1)
        )
        return result.first() is not None

    async def exists_for_type(self, type_config_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(LeaveRequest.id)
            .where(LeaveRequest.leave_type_config_id == type_config_id)
            .limit(1)
        )
        return result.first() is not None

    def employee_query(
        self,
        employee_id: uuid.UUID,
        status: Optional[LeaveRequestStatus] = None,
    ) -> Select[tuple[LeaveRequest]]:
        stmt = (
            self._base_select()
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.submitted_at.desc())
        )
        if status is not None:
            stmt = stmt.where(LeaveRequest.status == status)
        return stmt

    @staticmethod
    def _awaiting_manager(
        manager_id: uuid.UUID,
        report_ids: Optional[list[uuid.UUID]],
    ):
        if report_ids is None:
            return and_(
                LeaveRequest.status == LeaveRequestStatus.PENDING,
                LeaveRequest.requires_manager_approval.is_(True),
                LeaveRequest.manager_id == manager_id,
            )
        return and_(
            LeaveRequest.status == LeaveRequestStatus.PENDING,
            LeaveRequest.employee_id.in_(report_ids),
        )

    def manager_queue_query(
        self,
        manager_id: uuid.UUID,
        *,
        report_ids: Optional[list[uuid.UUID]] = None,
    ) -> Select[tuple[LeaveRequest]]:
        """PENDING requests awaiting this manager.

        With ``report_ids`` the queue is computed from the live reporting line
        instead of the manager captured at submission.
        """
        return (
            self._base_select()
            .where(self._awaiting_manager(manager_id, report_ids))
            .order_by(LeaveRequest.submitted_at.asc())
        )

    def hr_queue_query(
        self,
        *,
        unmanaged_ids: Optional[list[uuid.UUID]] = None,
        manager_id: Optional[uuid.UUID] = None,
        report_ids: Optional[list[uuid.UUID]] = None,
    ) -> Select[tuple[LeaveRequest]]:
        """MANAGER_APPROVED requests plus PENDING ones that skip the manager level.

        ``unmanaged_ids`` lists employees with no manager, used when
        routing follows the live directory instead of the submission snapshot.
        With ``manager_id`` the queue also holds the PENDING requests of that
        HR user's own reports, which they sign at manager level first.
        """
        if unmanaged_ids is None:
            pending_for_hr = and_(
                LeaveRequest.status == LeaveRequestStatus.PENDING,
                LeaveRequest.requires_manager_approval.is_(False),
            )
        else:
            pending_for_hr = and_(
                LeaveRequest.status == LeaveRequestStatus.PENDING,
                LeaveRequest.employee_id.in_(unmanaged_ids),
            )
        clauses = [
            LeaveRequest.status == LeaveRequestStatus.MANAGER_APPROVED,
            pending_for_hr,
        ]
        if manager_id is not None:
            clauses.append(self._awaiting_manager(manager_id, report_ids))
        return (
            self._base_select()
            .where(or_(*clauses))
            .order_by(LeaveRequest.submitted_at.asc())
        )


class LeaveApprovalRepository(BaseRepository[LeaveApproval]):
    model = LeaveApproval

    async def find_for_level(
        self,
        request_id: uuid.UUID,
        approver_type: ApproverType,
    ) -> Optional[LeaveApproval]:
        result = await self.session.execute(
            select(LeaveApproval).where(
                LeaveApproval.leave_request_id == request_id,
                LeaveApproval.approver_type == approver_type,
            )
        )
        return result.scalars().first()

    async def list_for_request(self, request_id: uuid.UUID) -> list[LeaveApproval]:
        result = await self.session.execute(
            select(LeaveApproval)
            .where(LeaveApproval.leave_request_id == request_id)
            .order_by(LeaveApproval.created_at)
        )
        return list(result.scalars().all())
