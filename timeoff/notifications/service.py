"""Notification service: fire-and-forget leave event delivery.

The workflow calls ``dispatch_notification`` only after its transaction has
committed. ``NotificationService`` writes in its own session, so a failure
here can never roll back a leave state change.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import LeaveEvent, NotificationType
from timeoff.database import TenantContext
from timeoff.notifications.models import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, event: LeaveEvent, payload: dict[str, Any]) -> None:
        ...


# ── Message templates ───────────────────────────────────────────────

_TEMPLATES: dict[LeaveEvent, tuple[NotificationType, str, str]] = {
    LeaveEvent.submitted: (
        NotificationType.action_required,
        "New Leave Request",
        "A leave request from {start_date} to {end_date} ({total_days} day(s)) "
        "requires your approval.",
    ),
    LeaveEvent.manager_approved: (
        NotificationType.action_required,
        "Leave Request Awaiting HR",
        "A leave request from {start_date} to {end_date} was approved by the "
        "manager and requires HR approval.",
    ),
    LeaveEvent.approved: (
        NotificationType.approval,
        "Leave Request Approved",
        "Your leave request from {start_date} to {end_date} has been approved.",
    ),
    LeaveEvent.rejected: (
        NotificationType.alert,
        "Leave Request Rejected",
        "Your leave request from {start_date} to {end_date} was rejected. "
        "Reason: {reason}",
    ),
    LeaveEvent.cancelled: (
        NotificationType.info,
        "Leave Request Cancelled",
        "The leave request from {start_date} to {end_date} was cancelled.",
    ),
}


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Persists leave events as in-app notifications for one tenant."""

    def __init__(self, tenant: TenantContext) -> None:
        self._tenant = tenant

    async def notify(self, event: LeaveEvent, payload: dict[str, Any]) -> None:
        async with self._tenant.session_factory() as db:
            async with db.begin():
                await self.create_notification(db, event, payload)

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        event: LeaveEvent,
        payload: dict[str, Any],
    ) -> Notification:
        """Render the event template and flush one notification row."""
        ntype, title, template = _TEMPLATES[event]
        request_id = payload.get("request_id")
        notification = Notification(
            recipient_id=payload.get("recipient_id"),
            type=ntype,
            event=event.value,
            title=title,
            message=template.format(
                start_date=payload.get("start_date"),
                end_date=payload.get("end_date"),
                total_days=payload.get("total_days"),
                reason=payload.get("reason") or "-",
            ),
            action_url=f"/leave/requests/{request_id}" if request_id else None,
            entity_type="leave_request",
            entity_id=request_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        recipient_id: Optional[uuid.UUID],
    ) -> int:
        """Unread notifications for an employee, or for the HR queue when None."""
        recipient_filter = (
            Notification.recipient_id.is_(None)
            if recipient_id is None
            else Notification.recipient_id == recipient_id
        )
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(recipient_filter, Notification.is_read.is_(False))
        )
        return result.scalar_one()


# ── Dispatcher ──────────────────────────────────────────────────────


async def dispatch_notification(
    notifier: Optional[Notifier],
    event: LeaveEvent,
    payload: dict[str, Any],
) -> None:
    """Deliver a leave event; failures are logged and never re-raised."""
    if notifier is None:
        return
    try:
        await notifier.notify(event, payload)
    except Exception:
        logger.exception(
            "Notification %s failed for leave request %s",
            event.value, payload.get("request_id"),
        )
