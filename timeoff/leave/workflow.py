"""Approval router: the leave request state machine.

``transition`` is the only place that decides whether an action is legal
and which status it produces. Approvers are resolved once from the caller's
role into a ``ManagerApprover`` or ``HRApprover`` and carry the level they
act at.

    PENDING ── manager approve ──▶ MANAGER_APPROVED ── HR approve ──▶ APPROVED
       │  └── HR approve (no manager) ───────────────────────────────▶ APPROVED
       ├── reject / cancel ──▶ REJECTED / CANCELLED
"""

from __future__ import annotations

import uuid
from typing import Optional

from timeoff.common.constants import (
    HR_ROLES,
    TERMINAL_STATUSES,
    ApproverType,
    LeaveAction,
    LeaveRequestStatus,
    UserRole,
)
from timeoff.common.exceptions import InvalidTransition, UnauthorizedApprover

_S = LeaveRequestStatus


# ── Approver capability ─────────────────────────────────────────────

class Approver:
    level: ApproverType

    def __init__(self, approver_id: uuid.UUID) -> None:
        self.approver_id = approver_id

    def authorize(self, request_id: uuid.UUID, manager_id: Optional[uuid.UUID]) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.approver_id}>"


class ManagerApprover(Approver):
    level = ApproverType.MANAGER

    def authorize(self, request_id: uuid.UUID, manager_id: Optional[uuid.UUID]) -> None:
        if manager_id is None or manager_id != self.approver_id:
            raise UnauthorizedApprover(self.approver_id, request_id)


class HRApprover(Approver):
    level = ApproverType.HR

    def authorize(self, request_id: uuid.UUID, manager_id: Optional[uuid.UUID]) -> None:
        return None


def approver_for(approver_id: uuid.UUID, role: UserRole) -> Approver:
    if role in HR_ROLES:
        return HRApprover(approver_id)
    return ManagerApprover(approver_id)


def acting_approver(
    approver: Approver,
    status: LeaveRequestStatus,
    requires_manager_approval: bool,
    manager_id: Optional[uuid.UUID],
) -> Approver:
    """The approver at the level they act at for this request.

    HR staff who are themselves the routed manager sign the manager level
    first; their HR role only applies once the request has left PENDING.
    """
    if (
        approver.level == ApproverType.HR
        and requires_manager_approval
        and status == _S.PENDING
        and manager_id == approver.approver_id
    ):
        return ManagerApprover(approver.approver_id)
    return approver


# ── Transition table ────────────────────────────────────────────────

def _attempted(action: LeaveAction, level: Optional[ApproverType]) -> str:
    return action.value if level is None else f"{action.value} ({level.value})"


def transition(
    status: LeaveRequestStatus,
    action: LeaveAction,
    level: Optional[ApproverType],
    requires_manager_approval: bool,
) -> LeaveRequestStatus:
    """Return the status ``action`` leads to, or raise ``InvalidTransition``.

    ``level`` is None for owner actions (cancel).
    """
    # HR acts on what the manager has passed on, or directly when there is no manager.
    awaiting_hr = _S.MANAGER_APPROVED if requires_manager_approval else _S.PENDING
    new_status: Optional[LeaveRequestStatus] = None

    if action == LeaveAction.cancel:
        if level is None and status == _S.PENDING:
            new_status = _S.CANCELLED

    elif level == ApproverType.MANAGER:
        if requires_manager_approval and status == _S.PENDING:
            new_status = (
                _S.MANAGER_APPROVED if action == LeaveAction.approve else _S.REJECTED
            )

    elif level == ApproverType.HR:
        if status == awaiting_hr:
            new_status = _S.APPROVED if action == LeaveAction.approve else _S.REJECTED

    if new_status is None:
        raise InvalidTransition(status.value, _attempted(action, level))
    return new_status


def releases_reservation(status: LeaveRequestStatus) -> bool:
    """Terminal-negative outcomes give the reserved days back."""
    return status in (_S.REJECTED, _S.CANCELLED)


def is_final(status: LeaveRequestStatus) -> bool:
    return status in TERMINAL_STATUSES
