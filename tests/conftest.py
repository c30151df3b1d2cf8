"""Shared test fixtures: async DB, tenant context, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
``FOR UPDATE`` compiles away on SQLite, so locking is exercised only for
correct sequencing, not real contention.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from timeoff.auth.dependencies import get_tenant
from timeoff.common.constants import LeaveEvent, LeaveType, UserRole
from timeoff.config import settings
from timeoff.database import Base, TenantContext
from timeoff.directory.service import SqlEmployeeDirectory
from timeoff.leave.service import LeaveWorkflowService
from timeoff.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import timeoff.common.audit  # noqa: F401
import timeoff.directory.models  # noqa: F401
import timeoff.leave.models  # noqa: F401
import timeoff.notifications.models  # noqa: F401
import timeoff.periods.models  # noqa: F401

from timeoff.directory.models import Employee
from timeoff.periods.models import LeavePeriod, LeaveTypeConfig


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_TENANT_ID = "acme"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

TEST_TENANT = TenantContext(tenant_id=TEST_TENANT_ID, session_factory=TestSessionFactory)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from timeoff.common.rate_limit import limiter
    limiter.reset()
    yield


# ── Notifier doubles ────────────────────────────────────────────────

class RecordingNotifier:
    """Collects every dispatched event in order."""

    def __init__(self) -> None:
        self.events: list[tuple[LeaveEvent, dict[str, Any]]] = []

    async def notify(self, event: LeaveEvent, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[LeaveEvent]:
        return [e for e, _ in self.events]


class FailingNotifier:
    async def notify(self, event: LeaveEvent, payload: dict[str, Any]) -> None:
        raise RuntimeError("mail relay down")


# ── Tenant / workflow fixtures ──────────────────────────────────────

@pytest.fixture
def tenant() -> TenantContext:
    return TEST_TENANT


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def workflow(tenant, notifier) -> LeaveWorkflowService:
    """Workflow with routing snapshotted at submission."""
    return LeaveWorkflowService(
        tenant,
        directory=SqlEmployeeDirectory(),
        notifier=notifier,
        snapshot_routing=True,
    )


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with tenant resolution pinned to the test DB."""
    application = create_app()
    application.dependency_overrides[get_tenant] = lambda: TEST_TENANT
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def today() -> date:
    return datetime.now(timezone.utc).date()


def _make_employee(
    *,
    first_name: str = "Test",
    last_name: str = "User",
    manager_id: Optional[uuid.UUID] = None,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"EMP-{code}",
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}.{code.lower()}@example.com",
        manager_id=manager_id,
        is_active=True,
    )


def _make_period(
    *,
    name: str = "Current Year",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    is_active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        start_date=start_date or today() - timedelta(days=30),
        end_date=end_date or today() + timedelta(days=365),
        is_active=is_active,
        description=None,
    )


def _make_leave_type(
    period_id: uuid.UUID,
    *,
    type: LeaveType = LeaveType.ANNUAL,
    name: str = "Annual Leave",
    default_quota: int = 12,
    max_consecutive_days: Optional[int] = None,
    advance_notice_days: int = 0,
    requires_approval: bool = True,
    allow_negative_balance: bool = False,
    is_active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        leave_period_id=period_id,
        type=type,
        name=name,
        description=None,
        default_quota=default_quota,
        max_consecutive_days=max_consecutive_days,
        advance_notice_days=advance_notice_days,
        is_carry_forward=False,
        max_carry_forward=None,
        requires_approval=requires_approval,
        allow_negative_balance=allow_negative_balance,
        is_active=is_active,
    )


# ── Seed helpers (commit so the workflow's own sessions see the rows) ──

async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.commit()
    return emp


async def seed_period(db: AsyncSession, **kwargs) -> LeavePeriod:
    period = LeavePeriod(**_make_period(**kwargs))
    db.add(period)
    await db.commit()
    return period


async def seed_leave_type(db: AsyncSession, period_id: uuid.UUID, **kwargs) -> LeaveTypeConfig:
    config = LeaveTypeConfig(**_make_leave_type(period_id, **kwargs))
    db.add(config)
    await db.commit()
    return config


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    *,
    tenant: str = TEST_TENANT_ID,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "tenant": tenant,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}
