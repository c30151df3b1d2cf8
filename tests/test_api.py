"""HTTP API tests: auth, leave endpoints and RFC 7807 error bodies."""

from __future__ import annotations

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import UserRole
from tests.conftest import (
    auth_headers,
    create_access_token,
    seed_employee,
    seed_leave_type,
    seed_period,
    today,
)

REQUESTS = "/api/v1/leave/requests"
BALANCES = "/api/v1/leave/balances"
PERIODS = "/api/v1/leave-periods"
TYPES = "/api/v1/leave-types"


async def _seed(db: AsyncSession):
    manager = await seed_employee(db, first_name="Maya")
    employee = await seed_employee(db, first_name="Eli", manager_id=manager.id)
    hr = await seed_employee(db, first_name="Hana")
    period = await seed_period(db)
    annual = await seed_leave_type(db, period.id)
    return manager, employee, hr, period, annual


def _payload(type_id: uuid.UUID, start_in: int = 10, days: int = 3) -> dict:
    start = today() + timedelta(days=start_in)
    return {
        "leave_type_config_id": str(type_id),
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=days - 1)).isoformat(),
        "reason": "Family trip",
    }


def _assert_problem(resp, status: int, error_type: str) -> dict:
    assert resp.status_code == status
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    assert body["status"] == status
    assert body["type"].endswith(f"/{error_type}")
    return body


# ═════════════════════════════════════════════════════════════════════
# System / auth
# ═════════════════════════════════════════════════════════════════════


class TestSystemAndAuth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{REQUESTS}/my")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient):
        token = create_access_token(uuid.uuid4(), expired=True)
        resp = await client.get(f"{REQUESTS}/my", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired."

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get(f"{REQUESTS}/my", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# Leave requests
# ═════════════════════════════════════════════════════════════════════


class TestLeaveRequestEndpoints:

    async def test_submit_and_read_back(self, client: AsyncClient, db: AsyncSession):
        manager, employee, _, _, annual = await _seed(db)
        resp = await client.post(
            f"{REQUESTS}/", json=_payload(annual.id, days=3), headers=auth_headers(employee.id),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "PENDING"
        assert body["total_days"] == 3
        assert body["manager_id"] == str(manager.id)

        resp = await client.get(f"{REQUESTS}/{body['id']}", headers=auth_headers(employee.id))
        assert resp.status_code == 200

        resp = await client.get(f"{REQUESTS}/my", headers=auth_headers(employee.id))
        assert resp.json()["meta"]["total"] == 1

    async def test_submit_missing_reason_is_422(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, annual = await _seed(db)
        payload = _payload(annual.id)
        del payload["reason"]
        resp = await client.post(f"{REQUESTS}/", json=payload, headers=auth_headers(employee.id))
        body = _assert_problem(resp, 422, "validation-failed")
        assert "reason" in body["errors"]

    async def test_submit_insufficient_balance_is_422(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, annual = await _seed(db)
        resp = await client.post(
            f"{REQUESTS}/", json=_payload(annual.id, days=20), headers=auth_headers(employee.id),
        )
        body = _assert_problem(resp, 422, "insufficient-balance")
        assert body["errors"] == {"available": 12, "requested": 20}

    async def test_submit_overlap_is_422(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, annual = await _seed(db)
        headers = auth_headers(employee.id)
        await client.post(f"{REQUESTS}/", json=_payload(annual.id, start_in=10), headers=headers)
        resp = await client.post(f"{REQUESTS}/", json=_payload(annual.id, start_in=11), headers=headers)
        _assert_problem(resp, 422, "overlapping-request")

    async def test_full_approval_over_http(self, client: AsyncClient, db: AsyncSession):
        manager, employee, hr, _, annual = await _seed(db)
        created = (await client.post(
            f"{REQUESTS}/", json=_payload(annual.id), headers=auth_headers(employee.id),
        )).json()

        pending = await client.get(
            f"{REQUESTS}/pending", headers=auth_headers(manager.id, UserRole.manager),
        )
        assert [r["id"] for r in pending.json()["data"]] == [created["id"]]

        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/approve",
            json={"comments": "OK"},
            headers=auth_headers(manager.id, UserRole.manager),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "MANAGER_APPROVED"

        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/approve",
            json={},
            headers=auth_headers(hr.id, UserRole.hr_admin),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "APPROVED"

        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/approve",
            json={},
            headers=auth_headers(hr.id, UserRole.hr_admin),
        )
        _assert_problem(resp, 409, "invalid-transition")

    async def test_employee_role_direct_manager_can_approve(self, client: AsyncClient, db: AsyncSession):
        """Approval rights follow the reporting line, not the token role."""
        lead = await seed_employee(db, first_name="Lea")
        report = await seed_employee(db, first_name="Rob", manager_id=lead.id)
        other = await seed_employee(db, first_name="Otto")
        annual = await seed_leave_type(db, (await seed_period(db)).id)
        created = (await client.post(
            f"{REQUESTS}/", json=_payload(annual.id), headers=auth_headers(report.id),
        )).json()

        pending = await client.get(f"{REQUESTS}/pending", headers=auth_headers(lead.id))
        assert pending.status_code == 200
        assert [r["id"] for r in pending.json()["data"]] == [created["id"]]

        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/approve", json={}, headers=auth_headers(other.id),
        )
        _assert_problem(resp, 403, "unauthorized-approver")

        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/approve",
            json={"comments": "Fine by me"},
            headers=auth_headers(lead.id),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "MANAGER_APPROVED"

        detail = (await client.get(
            f"{REQUESTS}/{created['id']}", headers=auth_headers(report.id),
        )).json()
        assert [(a["approver_type"], a["approver_id"]) for a in detail["approvals"]] == [
            ("MANAGER", str(lead.id)),
        ]
        assert detail["approvals"][0]["comments"] == "Fine by me"

    async def test_employee_role_without_reports_has_empty_queue(
        self, client: AsyncClient, db: AsyncSession,
    ):
        _, employee, _, _, annual = await _seed(db)
        await client.post(f"{REQUESTS}/", json=_payload(annual.id), headers=auth_headers(employee.id))
        resp = await client.get(f"{REQUESTS}/pending", headers=auth_headers(employee.id))
        assert resp.status_code == 200
        assert resp.json()["data"] == []

    async def test_wrong_manager_is_403(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, annual = await _seed(db)
        other = await seed_employee(db, first_name="Otto")
        created = (await client.post(
            f"{REQUESTS}/", json=_payload(annual.id), headers=auth_headers(employee.id),
        )).json()
        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/reject",
            json={"reason": "No"},
            headers=auth_headers(other.id, UserRole.manager),
        )
        _assert_problem(resp, 403, "unauthorized-approver")

    async def test_reject_requires_reason(self, client: AsyncClient, db: AsyncSession):
        manager, employee, _, _, annual = await _seed(db)
        created = (await client.post(
            f"{REQUESTS}/", json=_payload(annual.id), headers=auth_headers(employee.id),
        )).json()
        resp = await client.patch(
            f"{REQUESTS}/{created['id']}/reject",
            json={},
            headers=auth_headers(manager.id, UserRole.manager),
        )
        _assert_problem(resp, 422, "validation-failed")

    async def test_cancel_restores_balance(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, annual = await _seed(db)
        headers = auth_headers(employee.id)
        created = (await client.post(
            f"{REQUESTS}/", json=_payload(annual.id, days=4), headers=headers,
        )).json()

        balances = (await client.get(f"{BALANCES}/my", headers=headers)).json()
        assert balances[0]["used_quota"] == 4

        resp = await client.patch(f"{REQUESTS}/{created['id']}/cancel", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"

        summary = (await client.get(f"{BALANCES}/my/summary", headers=headers)).json()
        assert summary["used_quota"] == 0
        assert summary["remaining_quota"] == 12

    async def test_unknown_request_is_404(self, client: AsyncClient, db: AsyncSession):
        _, employee, _, _, _ = await _seed(db)
        resp = await client.get(f"{REQUESTS}/{uuid.uuid4()}", headers=auth_headers(employee.id))
        body = _assert_problem(resp, 404, "not-found")
        assert body["instance"].startswith(REQUESTS)

    async def test_employee_balances_requires_hr(self, client: AsyncClient, db: AsyncSession):
        _, employee, hr, _, _ = await _seed(db)
        resp = await client.get(f"{BALANCES}/employee/{employee.id}", headers=auth_headers(employee.id))
        assert resp.status_code == 403
        resp = await client.get(
            f"{BALANCES}/employee/{employee.id}", headers=auth_headers(hr.id, UserRole.hr_admin),
        )
        assert resp.status_code == 200
        assert resp.json() == []


# ═════════════════════════════════════════════════════════════════════
# Periods and leave types
# ═════════════════════════════════════════════════════════════════════


class TestPeriodEndpoints:

    async def test_create_period_requires_hr(self, client: AsyncClient, db: AsyncSession):
        emp = await seed_employee(db)
        body = {"name": "FY27", "start_date": "2027-01-01", "end_date": "2027-12-31"}
        resp = await client.post(f"{PERIODS}/", json=body, headers=auth_headers(emp.id))
        _assert_problem(resp, 403, "forbidden")

        resp = await client.post(
            f"{PERIODS}/", json=body, headers=auth_headers(emp.id, UserRole.hr_admin),
        )
        assert resp.status_code == 201
        assert resp.json()["name"] == "FY27"

    async def test_overlapping_period_is_409(self, client: AsyncClient, db: AsyncSession):
        hr = await seed_employee(db)
        headers = auth_headers(hr.id, UserRole.hr_admin)
        await client.post(
            f"{PERIODS}/",
            json={"name": "FY27", "start_date": "2027-01-01", "end_date": "2027-12-31"},
            headers=headers,
        )
        resp = await client.post(
            f"{PERIODS}/",
            json={"name": "Overlap", "start_date": "2027-06-01", "end_date": "2028-05-31"},
            headers=headers,
        )
        _assert_problem(resp, 409, "overlapping-period")

    async def test_active_period_and_default_types(self, client: AsyncClient, db: AsyncSession):
        hr = await seed_employee(db)
        period = await seed_period(db)
        headers = auth_headers(hr.id, UserRole.hr_admin)

        resp = await client.get(f"{PERIODS}/active", headers=auth_headers(hr.id))
        assert resp.json()["id"] == str(period.id)

        resp = await client.post(f"{PERIODS}/{period.id}/setup-default-types", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["created"] == 5

        resp = await client.get(
            TYPES + "/", params={"period_id": str(period.id)}, headers=auth_headers(hr.id),
        )
        assert len(resp.json()) == 5

    async def test_no_active_period_is_404(self, client: AsyncClient, db: AsyncSession):
        emp = await seed_employee(db)
        resp = await client.get(f"{PERIODS}/active", headers=auth_headers(emp.id))
        _assert_problem(resp, 404, "no-active-period")
