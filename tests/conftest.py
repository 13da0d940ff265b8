"""Pytest fixtures for payroll tests."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from ems_payroll.auth import issue_session_token
from ems_payroll.config import Settings
from ems_payroll.database import make_session_factory
from ems_payroll.models import (
    AbsenceRecord,
    AttendanceRecord,
    Base,
    Employee,
    SalesRecord,
    User,
)
from ems_payroll.services.notification_service import NotificationDispatcher
from ems_payroll.services.relay_client import RelayClient
from ems_payroll.services.salary_service import SalaryService

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_SECRET = "test-secret"
TEST_INTERNAL_KEY = "internal-test-key"


def make_settings(**overrides) -> Settings:
    """Settings independent of the process environment."""
    values = dict(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        jwt_secret=TEST_SECRET,
        internal_api_key=TEST_INTERNAL_KEY,
        relay_url=None,
        relay_host="127.0.0.1",
        relay_port=3001,
        relay_timeout_seconds=1.0,
        admin_realtime_enabled=True,
        employee_realtime_enabled=True,
        cors_origins=("http://localhost:3000",),
        default_base_salary=Decimal("2000"),
        default_bonus_percent=Decimal("5"),
        default_overtime_rate=Decimal("20"),
        default_undertime_rate=Decimal("15"),
        default_absence_rate=Decimal("50"),
    )
    values.update(overrides)
    return Settings(**values)


class RecordingRelay:
    """httpx transport handler that records relay posts."""

    def __init__(self, status_code: int = 200, fail: bool = False):
        self.status_code = status_code
        self.fail = fail
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("relay unreachable", request=request)
        return httpx.Response(self.status_code, json={"status": "ok", "notificationsSent": 0})

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    @property
    def events(self) -> list[str]:
        return [p["event"] for p in self.payloads]


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with make_session_factory(engine)() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def admin_user(session: AsyncSession) -> User:
    user = User(email="admin@example.com", name="Ada Admin", role="admin", status="approved")
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def employee_user(session: AsyncSession) -> User:
    user = User(email="emp@example.com", name="Eli Employee", role="employee", status="approved")
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def employee(session: AsyncSession, employee_user: User) -> Employee:
    employee = Employee(user_id=employee_user.id, position="Sales")
    session.add(employee)
    await session.commit()
    return employee


@pytest_asyncio.fixture
async def other_employee(session: AsyncSession) -> Employee:
    user = User(email="other@example.com", name="Otto Other", role="employee", status="approved")
    session.add(user)
    await session.flush()
    employee = Employee(user_id=user.id, position="Support")
    session.add(employee)
    await session.commit()
    return employee


@pytest_asyncio.fixture
async def period_facts(session: AsyncSession, employee: Employee) -> Employee:
    """March 2025: 170 hours, 4000 in sales, one absent day."""
    for day, hours in ((3, "85"), (4, "85")):
        session.add(
            AttendanceRecord(
                employee_id=employee.id,
                work_date=date(2025, 3, day),
                work_hours=Decimal(hours),
            )
        )
    session.add(SalesRecord(employee_id=employee.id, sale_date=date(2025, 3, 10), amount=Decimal("2500")))
    session.add(SalesRecord(employee_id=employee.id, sale_date=date(2025, 3, 20), amount=Decimal("1500")))
    session.add(AbsenceRecord(employee_id=employee.id, absence_date=date(2025, 3, 14)))
    # Outside the period
    session.add(SalesRecord(employee_id=employee.id, sale_date=date(2025, 4, 1), amount=Decimal("9999")))
    await session.commit()
    return employee


@pytest.fixture
def relay_recorder() -> RecordingRelay:
    return RecordingRelay()


@pytest_asyncio.fixture
async def relay_client(relay_recorder: RecordingRelay) -> AsyncGenerator[RelayClient, None]:
    client = RelayClient(
        "http://relay.test",
        api_key=TEST_INTERNAL_KEY,
        transport=httpx.MockTransport(relay_recorder),
    )
    yield client
    await client.aclose()


@pytest.fixture
def dispatcher(session: AsyncSession, relay_client: RelayClient) -> NotificationDispatcher:
    return NotificationDispatcher(session, relay_client)


@pytest.fixture
def salary_service(
    session: AsyncSession, dispatcher: NotificationDispatcher, settings: Settings
) -> SalaryService:
    return SalaryService(session, dispatcher, settings)


@pytest.fixture
def admin_token(admin_user: User) -> str:
    return issue_session_token(TEST_SECRET, admin_user.id, email=admin_user.email, role="admin")


@pytest.fixture
def employee_token(employee_user: User) -> str:
    return issue_session_token(TEST_SECRET, employee_user.id, email=employee_user.email)


@pytest.fixture
def admin_headers(admin_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def employee_headers(employee_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {employee_token}"}
