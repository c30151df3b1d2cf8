"""Submission gate: pure checks run before a reservation is made.

Checks run in a fixed order and the first failure is raised. No I/O happens
here; the caller reads the policy, balance and existing requests inside the
same transaction that will reserve the days.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Sequence

from timeoff.common.exceptions import (
    AdvanceNoticeViolation,
    InsufficientBalance,
    MaxConsecutiveDaysExceeded,
    OverlappingRequest,
    ValidationFailed,
)
from timeoff.periods.models import LeavePeriod, LeaveTypeConfig


@dataclass(frozen=True)
class SubmissionDraft:
    employee_id: uuid.UUID
    leave_type_config_id: uuid.UUID
    start_date: date
    end_date: date
    reason: str


@dataclass(frozen=True)
class ExistingRequest:
    """Just the fields the overlap check needs."""

    id: uuid.UUID
    start_date: date
    end_date: date


def day_count(start_date: date, end_date: date) -> int:
    """Calendar days in [start_date, end_date], both ends included."""
    return (end_date - start_date).days + 1


# ── Individual checks ───────────────────────────────────────────────

def check_dates(draft: SubmissionDraft, today: date) -> None:
    if not draft.reason or not draft.reason.strip():
        raise ValidationFailed("reason", "A reason is required.")
    if draft.start_date > draft.end_date:
        raise ValidationFailed("date_order", "start_date must be on or before end_date.")
    if draft.start_date < today:
        raise ValidationFailed("retroactive", "Leave cannot start in the past.")


def check_policy_and_period(
    draft: SubmissionDraft,
    policy: LeaveTypeConfig,
    period: LeavePeriod,
) -> None:
    if not policy.is_active:
        raise ValidationFailed("leave_type_inactive", f"Leave type '{policy.name}' is not active.")
    if policy.leave_period_id != period.id:
        raise ValidationFailed(
            "leave_type_period",
            f"Leave type '{policy.name}' does not belong to the active period.",
        )
    if not (period.contains(draft.start_date) and period.contains(draft.end_date)):
        raise ValidationFailed(
            "period_bounds",
            f"Leave must fall within the period {period.start_date.isoformat()} "
            f"to {period.end_date.isoformat()}.",
        )


def check_sufficiency(total_days: int, remaining: int, policy: LeaveTypeConfig) -> None:
    if total_days > remaining and not policy.allow_negative_balance:
        raise InsufficientBalance(available=remaining, requested=total_days)


def check_advance_notice(draft: SubmissionDraft, policy: LeaveTypeConfig, today: date) -> None:
    earliest = today + timedelta(days=policy.advance_notice_days)
    if draft.start_date < earliest:
        raise AdvanceNoticeViolation(policy.advance_notice_days, earliest)


def check_max_consecutive(total_days: int, policy: LeaveTypeConfig) -> None:
    if policy.max_consecutive_days is not None and total_days > policy.max_consecutive_days:
        raise MaxConsecutiveDaysExceeded(policy.max_consecutive_days, total_days)


def check_no_overlap(draft: SubmissionDraft, existing: Sequence[ExistingRequest]) -> None:
    conflicts = [
        r.id for r in existing
        if r.start_date <= draft.end_date and r.end_date >= draft.start_date
    ]
    if conflicts:
        raise OverlappingRequest(draft.start_date, draft.end_date, conflicts)


# ── Gate ────────────────────────────────────────────────────────────

def validate_submission(
    draft: SubmissionDraft,
    *,
    policy: LeaveTypeConfig,
    period: LeavePeriod,
    remaining: int,
    existing: Sequence[ExistingRequest],
    today: date,
) -> int:
    """Run every check in order and return the inclusive day count.

    ``existing`` must already be limited to the employee's requests that
    still hold a reservation.
    """
    check_dates(draft, today)
    check_policy_and_period(draft, policy, period)
    total_days = day_count(draft.start_date, draft.end_date)
    check_sufficiency(total_days, remaining, policy)
    check_advance_notice(draft, policy, today)
    check_max_consecutive(total_days, policy)
    check_no_overlap(draft, existing)
    return total_days
