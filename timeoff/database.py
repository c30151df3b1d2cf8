"""Async SQLAlchemy base, per-tenant engines and the transactional unit of work.

Every tenant owns a separate database. Engines are created lazily by
``TenantEngineRegistry`` (owned by the application, see ``main.py``) and the
resulting ``TenantContext`` is passed explicitly to every service call.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from timeoff.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TENANT_ID_PATTERN = re.compile(r"^[a-z0-9_]{1,63}$")

# serialization_failure, deadlock_detected, lock_not_available, and
# unique_violation from two first-time inserts of the same balance row
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "23505"}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# ── Tenant context ──────────────────────────────────────────────────

@dataclass(frozen=True)
class TenantContext:
    """Storage handle bound to exactly one tenant, resolved once per request."""

    tenant_id: str
    session_factory: async_sessionmaker[AsyncSession]
    lock_timeout_ms: Optional[int] = None


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class TenantEngineRegistry:
    """Bounded LRU cache of tenant engines. Evicted engines are disposed."""

    def __init__(
        self,
        url_template: str,
        *,
        max_engines: int,
        engine_options: Optional[dict[str, Any]] = None,
        lock_timeout_ms: Optional[int] = None,
    ) -> None:
        if max_engines < 1:
            raise ValueError("max_engines must be at least 1.")
        self._url_template = url_template
        self._max_engines = max_engines
        self._engine_options = engine_options or {}
        self._lock_timeout_ms = lock_timeout_ms
        self._engines: OrderedDict[str, AsyncEngine] = OrderedDict()
        self._factories: dict[str, async_sessionmaker[AsyncSession]] = {}
        self._lock = asyncio.Lock()

    @property
    def tenants(self) -> list[str]:
        """Cached tenant ids, least recently used first."""
        return list(self._engines.keys())

    async def get(self, tenant_id: str) -> TenantContext:
        if not TENANT_ID_PATTERN.match(tenant_id):
            raise ValueError(f"Invalid tenant id: {tenant_id!r}")

        async with self._lock:
            if tenant_id in self._engines:
                self._engines.move_to_end(tenant_id)
            else:
                engine = create_async_engine(
                    self._url_template.format(tenant=tenant_id),
                    **self._engine_options,
                )
                self._engines[tenant_id] = engine
                self._factories[tenant_id] = make_session_factory(engine)
                logger.info("Created engine for tenant %s", tenant_id)

                while len(self._engines) > self._max_engines:
                    evicted_id, evicted = self._engines.popitem(last=False)
                    self._factories.pop(evicted_id, None)
                    await evicted.dispose()
                    logger.info("Evicted engine for tenant %s", evicted_id)

            return TenantContext(
                tenant_id=tenant_id,
                session_factory=self._factories[tenant_id],
                lock_timeout_ms=self._lock_timeout_ms,
            )

    async def dispose_all(self) -> None:
        async with self._lock:
            while self._engines:
                _, engine = self._engines.popitem(last=False)
                await engine.dispose()
            self._factories.clear()


# ── Unit of work ────────────────────────────────────────────────────

def is_transient_error(exc: BaseException) -> bool:
    """True for storage failures that are safe to retry from scratch."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is None:
        return False
    return sqlstate in _TRANSIENT_SQLSTATES or str(sqlstate).startswith("08")


async def run_in_transaction(
    tenant: TenantContext,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
) -> T:
    """Run ``work`` inside one transaction on the tenant's database.

    Transient storage failures roll the transaction back and re-run ``work``
    from scratch, so all state is re-read on every attempt. Application
    exceptions propagate on the first occurrence.
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
    backoff = settings.TRANSACTION_RETRY_BACKOFF_MS if backoff_ms is None else backoff_ms

    attempt = 1
    while True:
        try:
            async with tenant.session_factory() as session:
                async with session.begin():
                    if tenant.lock_timeout_ms and session.get_bind().dialect.name == "postgresql":
                        await session.execute(
                            text(f"SET LOCAL lock_timeout = {int(tenant.lock_timeout_ms)}")
                        )
                    return await work(session)
        except DBAPIError as exc:
            if attempt >= attempts or not is_transient_error(exc):
                raise
            logger.warning(
                "Transient storage error for tenant %s (attempt %d of %d): %s",
                tenant.tenant_id, attempt, attempts, exc.__class__.__name__,
            )
        await asyncio.sleep(backoff * attempt / 1000)
        attempt += 1
