"""Tests for shared infrastructure: transactions and retries, the tenant
engine registry, RFC 7807 handlers, pagination and role checks.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import Principal
from timeoff.common.constants import UserRole
from timeoff.common.exceptions import (
    InsufficientBalance,
    NotFoundException,
    register_exception_handlers,
)
from timeoff.common.pagination import build_meta, paginate_query
from timeoff.database import TenantEngineRegistry, is_transient_error, run_in_transaction
from timeoff.directory.models import Employee
from tests.conftest import TEST_TENANT, TestSessionFactory, _make_employee, seed_employee


# ── Helpers ─────────────────────────────────────────────────────────


class _DriverError(Exception):
    """Stands in for a driver exception carrying a SQLSTATE."""

    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _db_error(sqlstate: str = "40P01", *, invalidated: bool = False) -> DBAPIError:
    return DBAPIError("UPDATE leave_balance ...", {}, _DriverError(sqlstate), connection_invalidated=invalidated)


# ═════════════════════════════════════════════════════════════════════
# TRANSIENT ERROR CLASSIFICATION
# ═════════════════════════════════════════════════════════════════════


class TestIsTransientError:

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03", "23505", "08006"])
    def test_retryable_sqlstates(self, sqlstate):
        assert is_transient_error(_db_error(sqlstate))

    @pytest.mark.parametrize("sqlstate", ["23503", "22P02", "42P01"])
    def test_permanent_sqlstates(self, sqlstate):
        assert not is_transient_error(_db_error(sqlstate))

    def test_invalidated_connection(self):
        assert is_transient_error(_db_error("XX000", invalidated=True))

    def test_application_errors_are_not_transient(self):
        assert not is_transient_error(NotFoundException("LeaveRequest", "x"))
        assert not is_transient_error(ValueError("boom"))


# ═════════════════════════════════════════════════════════════════════
# UNIT OF WORK
# ═════════════════════════════════════════════════════════════════════


class TestRunInTransaction:

    async def test_commits_on_success(self):
        emp = Employee(**_make_employee())

        async def work(db: AsyncSession):
            db.add(emp)
            return emp.id

        emp_id = await run_in_transaction(TEST_TENANT, work)
        async with TestSessionFactory() as s:
            assert await s.get(Employee, emp_id) is not None

    async def test_rolls_back_on_application_error(self):
        attempts = 0

        async def work(db: AsyncSession):
            nonlocal attempts
            attempts += 1
            db.add(Employee(**_make_employee(first_name="Ghost")))
            await db.flush()
            raise InsufficientBalance(available=0, requested=1)

        with pytest.raises(InsufficientBalance):
            await run_in_transaction(TEST_TENANT, work, backoff_ms=0)
        assert attempts == 1

        async with TestSessionFactory() as s:
            rows = (await s.execute(select(Employee))).scalars().all()
        assert rows == []

    async def test_retries_transient_error_from_scratch(self, caplog):
        attempts = 0

        async def work(db: AsyncSession):
            nonlocal attempts
            attempts += 1
            db.add(Employee(**_make_employee(first_name=f"Try{attempts}")))
            await db.flush()
            if attempts == 1:
                raise _db_error("40P01")
            return attempts

        with caplog.at_level(logging.WARNING, logger="timeoff.database"):
            result = await run_in_transaction(TEST_TENANT, work, max_attempts=3, backoff_ms=0)

        assert result == 2
        assert "Transient storage error" in caplog.text
        async with TestSessionFactory() as s:
            names = (await s.execute(select(Employee.first_name))).scalars().all()
        assert names == ["Try2"]

    async def test_gives_up_after_max_attempts(self):
        attempts = 0

        async def work(db: AsyncSession):
            nonlocal attempts
            attempts += 1
            raise _db_error("40001")

        with pytest.raises(DBAPIError):
            await run_in_transaction(TEST_TENANT, work, max_attempts=2, backoff_ms=0)
        assert attempts == 2

    async def test_permanent_storage_error_not_retried(self):
        attempts = 0

        async def work(db: AsyncSession):
            nonlocal attempts
            attempts += 1
            raise _db_error("23503")

        with pytest.raises(DBAPIError):
            await run_in_transaction(TEST_TENANT, work, max_attempts=3, backoff_ms=0)
        assert attempts == 1


# ═════════════════════════════════════════════════════════════════════
# TENANT ENGINE REGISTRY
# ═════════════════════════════════════════════════════════════════════


class TestTenantEngineRegistry:

    async def test_same_tenant_reuses_engine(self):
        registry = TenantEngineRegistry("sqlite+aiosqlite://", max_engines=2)
        first = await registry.get("acme")
        second = await registry.get("acme")
        assert first.session_factory is second.session_factory
        assert first.tenant_id == "acme"
        await registry.dispose_all()

    async def test_evicts_least_recently_used(self):
        registry = TenantEngineRegistry("sqlite+aiosqlite://", max_engines=2)
        await registry.get("alpha")
        await registry.get("beta")
        await registry.get("alpha")
        await registry.get("gamma")
        assert registry.tenants == ["alpha", "gamma"]
        await registry.dispose_all()
        assert registry.tenants == []

    async def test_single_slot(self):
        registry = TenantEngineRegistry("sqlite+aiosqlite://", max_engines=1, lock_timeout_ms=500)
        await registry.get("alpha")
        ctx = await registry.get("beta")
        assert registry.tenants == ["beta"]
        assert ctx.lock_timeout_ms == 500
        await registry.dispose_all()

    @pytest.mark.parametrize("tenant_id", ["", "Acme", "acme-corp", "a;drop", "x" * 64])
    async def test_invalid_tenant_id(self, tenant_id):
        registry = TenantEngineRegistry("sqlite+aiosqlite://", max_engines=2)
        with pytest.raises(ValueError):
            await registry.get(tenant_id)
        assert registry.tenants == []

    def test_requires_capacity(self):
        with pytest.raises(ValueError):
            TenantEngineRegistry("sqlite+aiosqlite://", max_engines=0)


# ═════════════════════════════════════════════════════════════════════
# RFC 7807 HANDLERS
# ═════════════════════════════════════════════════════════════════════


class TestProblemDetails:

    @pytest.fixture
    async def problem_client(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/boom")
        async def boom():
            raise InsufficientBalance(available=2, requested=5)

        @app.get("/missing")
        async def missing():
            raise NotFoundException("LeaveRequest", "abc")

        @app.get("/typed/{item_id}")
        async def typed(item_id: int):
            return {"id": item_id}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    async def test_business_rule_body(self, problem_client: AsyncClient):
        resp = await problem_client.get("/boom")
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"] == "https://timeoff.local/errors/insufficient-balance"
        assert body["title"] == "Insufficient Balance"
        assert body["instance"] == "/boom"
        assert body["errors"] == {"available": 2, "requested": 5}

    async def test_not_found_body_has_no_errors(self, problem_client: AsyncClient):
        resp = await problem_client.get("/missing")
        assert resp.status_code == 404
        assert "errors" not in resp.json()

    async def test_request_validation_body(self, problem_client: AsyncClient):
        resp = await problem_client.get("/typed/not-a-number")
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"].endswith("/validation-failed")
        assert "item_id" in body["errors"]


# ═════════════════════════════════════════════════════════════════════
# PAGINATION / ROLES
# ═════════════════════════════════════════════════════════════════════


class TestPagination:

    def test_build_meta(self):
        meta = build_meta(page=2, page_size=10, total=25)
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_prev is True

    def test_build_meta_empty(self):
        meta = build_meta(page=1, page_size=10, total=0)
        assert meta.total_pages == 0
        assert meta.has_next is False

    async def test_paginate_query_without_filter(self, db: AsyncSession):
        for name in ("Ann", "Ben", "Cat"):
            await seed_employee(db, first_name=name)
        rows, total = await paginate_query(
            db, select(Employee).order_by(Employee.first_name), page=2, page_size=2,
        )
        assert total == 3
        assert [e.first_name for e in rows] == ["Cat"]


class TestPrincipalRoles:

    def test_hierarchy(self):
        hr = Principal(employee_id=uuid.uuid4(), role=UserRole.hr_admin, tenant_id="acme")
        assert hr.has_role(UserRole.manager)
        assert hr.has_role(UserRole.hr_admin)
        assert not hr.has_role(UserRole.system_admin)

        emp = Principal(employee_id=uuid.uuid4(), role=UserRole.employee, tenant_id="acme")
        assert not emp.has_role(UserRole.manager)
