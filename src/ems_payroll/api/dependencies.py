"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ems_payroll.auth import AuthenticationError, SessionUser, bearer_token, decode_session_token
from ems_payroll.config import Settings
from ems_payroll.database import init_db
from ems_payroll.services.notification_service import NotificationDispatcher, NotificationService
from ems_payroll.services.relay_client import RelayClient
from ems_payroll.services.salary_service import SalaryService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_relay_client(request: Request) -> RelayClient | None:
    return request.app.state.relay_client


AppSettings = Annotated[Settings, Depends(get_app_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Relay = Annotated[RelayClient | None, Depends(get_relay_client)]


async def get_current_user(
    settings: AppSettings,
    authorization: Annotated[str | None, Header()] = None,
) -> SessionUser:
    """Decode the bearer session token."""
    try:
        return decode_session_token(bearer_token(authorization), settings.jwt_secret)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


CurrentUser = Annotated[SessionUser, Depends(get_current_user)]


async def require_admin(user: CurrentUser) -> SessionUser:
    """Reject callers that are not admins."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


AdminUser = Annotated[SessionUser, Depends(require_admin)]


async def require_internal_or_admin(
    settings: AppSettings,
    authorization: Annotated[str | None, Header()] = None,
    x_internal_api_key: Annotated[str | None, Header()] = None,
) -> SessionUser | None:
    """Allow service-to-service calls with the internal key, else require an admin.

    Returns None for internal callers.
    """
    if settings.internal_api_key and x_internal_api_key == settings.internal_api_key:
        return None
    user = await get_current_user(settings, authorization)
    return await require_admin(user)


InternalOrAdmin = Annotated[SessionUser | None, Depends(require_internal_or_admin)]


def get_dispatcher(
    db: DbSession,
    relay: Relay,
    settings: AppSettings,
    authorization: Annotated[str | None, Header()] = None,
) -> NotificationDispatcher:
    """Dispatcher that forwards the caller's session token to the relay."""
    return NotificationDispatcher(
        db,
        relay,
        admin_realtime_enabled=settings.admin_realtime_enabled,
        employee_realtime_enabled=settings.employee_realtime_enabled,
        session_token=bearer_token(authorization),
    )


Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_salary_service(
    db: DbSession, dispatcher: Dispatcher, settings: AppSettings
) -> SalaryService:
    return SalaryService(db, dispatcher, settings)


def get_notification_service(db: DbSession) -> NotificationService:
    return NotificationService(db)


# Type aliases for cleaner dependency injection
Salaries = Annotated[SalaryService, Depends(get_salary_service)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
