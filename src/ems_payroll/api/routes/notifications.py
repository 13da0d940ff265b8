"""Notification API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from ems_payroll.api.dependencies import CurrentUser, Dispatcher, InternalOrAdmin, Notifications
from ems_payroll.api.schemas import (
    ErrorResponse,
    MarkAllReadResponse,
    NotificationCreate,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from ems_payroll.services.notification_service import (
    BroadcastTargets,
    NotificationForbiddenError,
    NotificationNotFoundError,
    NotificationTargetError,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    notifications: Notifications,
    user: CurrentUser,
    skip: Annotated[int, Query(ge=0)] = 0,
    take: Annotated[int, Query(ge=1, le=100)] = 20,
) -> NotificationListResponse:
    """Notifications visible to the caller, newest first."""
    items = await notifications.list_for(user, skip=skip, take=take)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        skip=skip,
        take=take,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(notifications: Notifications, user: CurrentUser) -> UnreadCountResponse:
    return UnreadCountResponse(count=await notifications.unread_count(user))


@router.put("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(notifications: Notifications, user: CurrentUser) -> MarkAllReadResponse:
    """Mark every unread notification addressed to the caller as read."""
    return MarkAllReadResponse(updated=await notifications.mark_all_read(user))


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def mark_read(
    notifications: Notifications,
    user: CurrentUser,
    notification_id: Annotated[int, Path()],
) -> NotificationResponse:
    try:
        notification = await notifications.mark_read(notification_id, user)
    except NotificationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NotificationForbiddenError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to modify this notification",
        )
    return NotificationResponse.model_validate(notification)


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_notification(
    dispatcher: Dispatcher,
    caller: InternalOrAdmin,
    payload: NotificationCreate,
) -> NotificationResponse:
    """Persist a notification and optionally push it to the relay."""
    targets = BroadcastTargets(
        admin=payload.broadcast_admin,
        employee=payload.broadcast_employee,
    )
    try:
        notification = await dispatcher.notify(
            type=payload.type,
            message=payload.message,
            user_id=payload.user_id,
            employee_id=payload.employee_id,
            action_url=payload.action_url,
            action_label=payload.action_label,
            broadcast_to=targets if targets.any else None,
        )
    except NotificationTargetError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return NotificationResponse.model_validate(notification)
