"""Notification dispatch and per-user notification queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ems_payroll.auth import SessionUser
from ems_payroll.database import transaction
from ems_payroll.models import Employee, Notification, User
from ems_payroll.services.relay_client import RelayClient

logger = logging.getLogger(__name__)

ADMIN_TYPE_PREFIX = "admin_"


class NotificationTargetError(Exception):
    """Raised when a notification has no resolvable recipient."""


class NotificationNotFoundError(Exception):
    """Raised when a notification id does not exist."""

    def __init__(self, notification_id: int):
        self.notification_id = notification_id
        super().__init__(f"Notification {notification_id} not found")


class NotificationForbiddenError(Exception):
    """Raised when a user touches a notification that is not theirs."""

    def __init__(self, notification_id: int, user_id: str):
        self.notification_id = notification_id
        self.user_id = user_id
        super().__init__(f"User {user_id} does not own notification {notification_id}")


@dataclass(frozen=True)
class BroadcastTargets:
    """Which relay audiences should receive a live copy."""

    admin: bool = False
    employee: bool = False

    @property
    def any(self) -> bool:
        return self.admin or self.employee


class NotificationDispatcher:
    """Creates notification rows and forwards them to the relay.

    Persistence always happens first and is committed on its own; the relay
    hand-off is fire-and-forget. Realtime delivery can be switched off per
    audience without affecting persistence.

    ``session_token`` is the caller's bearer token. It is forwarded with each
    broadcast so the relay can check who triggered it.
    """

    def __init__(
        self,
        session: AsyncSession,
        relay: RelayClient | None = None,
        *,
        admin_realtime_enabled: bool = True,
        employee_realtime_enabled: bool = True,
        session_token: str | None = None,
    ):
        self.session = session
        self.session_token = session_token
        self.relay = relay
        self.admin_realtime_enabled = admin_realtime_enabled
        self.employee_realtime_enabled = employee_realtime_enabled

    async def notify(
        self,
        *,
        type: str,
        message: str,
        user_id: str | None = None,
        employee_id: int | None = None,
        action_url: str | None = None,
        action_label: str | None = None,
        broadcast_to: BroadcastTargets | None = None,
    ) -> Notification:
        """Persist a notification and optionally broadcast it live.

        ``employee_id`` alone is resolved to the employee's owning user.

        Raises:
            NotificationTargetError: If neither id is given, or an id does
                not exist.
        """
        if user_id is None and employee_id is None:
            raise NotificationTargetError("Either user_id or employee_id is required")

        employee: Employee | None = None
        if employee_id is not None:
            employee = await self.session.get(Employee, employee_id)
            if employee is None:
                raise NotificationTargetError(f"Employee {employee_id} not found")

        final_user_id = user_id or (employee.user_id if employee else None)
        recipient = await self.session.get(User, final_user_id)
        if recipient is None:
            raise NotificationTargetError(f"User {final_user_id} not found")
        employee_user: User | None = None
        if employee is not None:
            employee_user = (
                recipient
                if employee.user_id == final_user_id
                else await self.session.get(User, employee.user_id)
            )

        notification = Notification(
            user_id=final_user_id,
            employee_id=employee_id,
            type=type,
            message=message,
            action_url=action_url,
            action_label=action_label,
            read=False,
        )
        async with transaction(self.session):
            self.session.add(notification)
            await self.session.flush()

        logger.info(
            "Notification %s created: type=%s user=%s employee=%s",
            notification.id,
            type,
            final_user_id,
            employee_id,
        )

        targets = self._effective_targets(broadcast_to, user_id, employee_id)
        if targets.any and self.relay is not None:
            self.relay.publish(
                self._broadcast_payload(notification, targets, employee_user, self.session_token)
            )

        return notification

    def _effective_targets(
        self,
        requested: BroadcastTargets | None,
        user_id: str | None,
        employee_id: int | None,
    ) -> BroadcastTargets:
        if requested is None:
            return BroadcastTargets()
        if user_id is not None and not self.admin_realtime_enabled:
            return BroadcastTargets()
        if employee_id is not None and not self.employee_realtime_enabled:
            return BroadcastTargets()
        return requested

    @staticmethod
    def _broadcast_payload(
        notification: Notification,
        targets: BroadcastTargets,
        employee_user: User | None,
        session_token: str | None,
    ) -> dict[str, Any]:
        return {
            "event": notification.type,
            "data": {
                "id": notification.id,
                "type": notification.type,
                "message": notification.message,
                "actionUrl": notification.action_url,
                "actionLabel": notification.action_label,
                "createdAt": notification.created_at.isoformat(),
                "read": notification.read,
                "userId": notification.user_id,
                "employeeId": notification.employee_id,
                "employeeName": employee_user.name if employee_user else None,
                "employeeEmail": employee_user.email if employee_user else None,
                "broadcastTo": {"admin": targets.admin, "employee": targets.employee},
            },
            "token": session_token or "anonymous",
        }


class NotificationService:
    """Read-side and read-flag operations scoped to the calling user.

    Admins see their own notifications plus every ``admin_*`` notification.
    Employees see notifications addressed to their user or employee id.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _employee_for(self, user: SessionUser) -> Employee | None:
        result = await self.session.execute(
            select(Employee).where(Employee.user_id == user.id)
        )
        return result.scalar_one_or_none()

    async def _visibility_filter(self, user: SessionUser) -> Any:
        if user.is_admin:
            return or_(
                Notification.user_id == user.id,
                Notification.type.startswith(ADMIN_TYPE_PREFIX),
            )
        employee = await self._employee_for(user)
        if employee is None:
            return Notification.user_id == user.id
        return or_(
            Notification.user_id == user.id,
            Notification.employee_id == employee.id,
        )

    async def list_for(
        self, user: SessionUser, skip: int = 0, take: int = 20
    ) -> list[Notification]:
        """List visible notifications, newest first."""
        visible = await self._visibility_filter(user)
        result = await self.session.execute(
            select(Notification)
            .where(visible)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(take)
        )
        return list(result.scalars().all())

    async def unread_count(self, user: SessionUser) -> int:
        visible = await self._visibility_filter(user)
        count = await self.session.scalar(
            select(func.count(Notification.id)).where(
                visible, Notification.read.is_(False)
            )
        )
        return count or 0

    async def mark_read(self, notification_id: int, user: SessionUser) -> Notification:
        """Flip one notification to read.

        Raises:
            NotificationNotFoundError: If the id does not exist.
            NotificationForbiddenError: If the caller does not own it.
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        owner = notification.user_id == user.id
        if not owner and not user.is_admin and notification.employee_id is not None:
            employee = await self._employee_for(user)
            owner = employee is not None and employee.id == notification.employee_id
        if not owner:
            raise NotificationForbiddenError(notification_id, user.id)

        async with transaction(self.session):
            notification.read = True
        return notification

    async def mark_all_read(self, user: SessionUser) -> int:
        """Mark every unread notification addressed to the caller as read."""
        if user.is_admin:
            owned = Notification.user_id == user.id
        else:
            employee = await self._employee_for(user)
            owned = (
                or_(Notification.user_id == user.id, Notification.employee_id == employee.id)
                if employee is not None
                else Notification.user_id == user.id
            )

        async with transaction(self.session):
            result = await self.session.execute(
                update(Notification)
                .where(owned, Notification.read.is_(False))
                .values(read=True)
            )
        return result.rowcount or 0
