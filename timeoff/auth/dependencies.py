"""Auth dependencies: JWT identity, RBAC enforcement, tenant resolution.

Tokens are issued by the identity provider; this service only validates them.
Claims used: ``sub`` (employee id), ``role`` and ``tenant``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import UserRole
from timeoff.common.exceptions import ForbiddenException
from timeoff.config import settings
from timeoff.database import TenantContext, TenantEngineRegistry

# Role hierarchy: each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {UserRole.system_admin, UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.hr_admin: {UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved once per request."""

    employee_id: uuid.UUID
    role: UserRole
    tenant_id: str

    def has_role(self, *roles: UserRole) -> bool:
        effective = _ROLE_HIERARCHY.get(self.role, {self.role})
        return bool(effective.intersection(roles))


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_principal(request: Request) -> Principal:
    """Validate the JWT and return the caller's identity."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    try:
        employee_id = uuid.UUID(payload["sub"])
        tenant_id = str(payload["tenant"])
    except (KeyError, ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Token is missing required claims.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    return Principal(employee_id=employee_id, role=role, tenant_id=tenant_id)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy: e.g. system_admin can access manager endpoints.
    """

    async def _check(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.has_role(*allowed_roles):
            raise ForbiddenException(
                detail=(
                    f"Role '{principal.role.value}' is not permitted. "
                    f"Required: {[r.value for r in allowed_roles]}."
                ),
            )
        return principal

    return _check


# ── Tenant resolution ───────────────────────────────────────────────

async def get_tenant(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> TenantContext:
    """Resolve the caller's tenant storage handle from the app-owned registry."""
    registry: TenantEngineRegistry = request.app.state.tenant_registry
    try:
        return await registry.get(principal.tenant_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid tenant claim.")


async def get_tenant_db(
    tenant: TenantContext = Depends(get_tenant),
) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: yield a tenant session, commit on success."""
    async with tenant.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
