"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://timeoff.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class ValidationFailed(AppException):
    """422: malformed input (bad date order, retroactive dates, ...)."""

    def __init__(self, check: str, message: str) -> None:
        self.check = check
        super().__init__(
            status_code=422,
            error_type="validation-failed",
            title="Validation Failed",
            detail=message,
            errors={check: [message]},
        )


# ── Business rules ──────────────────────────────────────────────────

class BusinessRuleViolation(AppException):
    """A well-formed request refused by a leave policy or workflow rule."""

    def __init__(
        self,
        error_type: str,
        title: str,
        detail: str,
        *,
        status_code: int = 422,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            status_code=status_code,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


class InsufficientBalance(BusinessRuleViolation):
    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=(
                f"Insufficient leave balance. Available: {available} day(s), "
                f"Requested: {requested} day(s)."
            ),
            errors={"available": available, "requested": requested},
        )


class OverlappingRequest(BusinessRuleViolation):
    def __init__(
        self,
        start_date: date,
        end_date: date,
        conflicting_ids: Sequence[Any] = (),
    ) -> None:
        self.start_date = start_date
        self.end_date = end_date
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            error_type="overlapping-request",
            title="Overlapping Request",
            detail=(
                f"Leave request {start_date.isoformat()} to {end_date.isoformat()} "
                "overlaps with an existing request."
            ),
            errors={"conflicting_ids": [str(i) for i in self.conflicting_ids]},
        )


class AdvanceNoticeViolation(BusinessRuleViolation):
    def __init__(self, required_days: int, earliest_start: date) -> None:
        self.required_days = required_days
        self.earliest_start = earliest_start
        super().__init__(
            error_type="advance-notice",
            title="Advance Notice Required",
            detail=(
                f"This leave type requires {required_days} day(s) advance notice; "
                f"the earliest allowed start date is {earliest_start.isoformat()}."
            ),
            errors={
                "required_days": required_days,
                "earliest_start": earliest_start.isoformat(),
            },
        )


class MaxConsecutiveDaysExceeded(BusinessRuleViolation):
    def __init__(self, max_days: int, requested: int) -> None:
        self.max_days = max_days
        self.requested = requested
        super().__init__(
            error_type="max-consecutive-days",
            title="Maximum Consecutive Days Exceeded",
            detail=(
                f"Maximum consecutive days for this leave type is {max_days}; "
                f"requested {requested}."
            ),
            errors={"max_days": max_days, "requested": requested},
        )


class InvalidTransition(BusinessRuleViolation):
    """409: the action is not legal from the request's current status."""

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=f"Cannot {attempted} a leave request in status {current}.",
            errors={"current": current, "attempted": attempted},
        )


class UnauthorizedApprover(BusinessRuleViolation):
    """403: approver is not entitled to act on this request."""

    def __init__(self, approver_id: Any, request_id: Any) -> None:
        self.approver_id = approver_id
        self.request_id = request_id
        super().__init__(
            status_code=403,
            error_type="unauthorized-approver",
            title="Unauthorized Approver",
            detail=(
                f"Approver '{approver_id}' is not the manager responsible "
                f"for leave request '{request_id}'."
            ),
        )


# ── Lookup / conflict ───────────────────────────────────────────────

class NotFoundException(AppException):
    """404: entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class NoActivePeriod(NotFoundException):
    def __init__(self) -> None:
        AppException.__init__(
            self,
            status_code=404,
            error_type="no-active-period",
            title="No Active Leave Period",
            detail="No active leave period found.",
        )


class ConflictError(AppException):
    """409: unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class DuplicateApproval(ConflictError):
    def __init__(self, request_id: Any, approver_type: str) -> None:
        self.request_id = request_id
        self.approver_type = approver_type
        AppException.__init__(
            self,
            status_code=409,
            error_type="duplicate-approval",
            title="Duplicate Approval",
            detail=(
                f"Leave request '{request_id}' already has a {approver_type} "
                "approval action."
            ),
        )


class OverlappingPeriod(ConflictError):
    def __init__(self, start_date: date, end_date: date) -> None:
        self.start_date = start_date
        self.end_date = end_date
        AppException.__init__(
            self,
            status_code=409,
            error_type="overlapping-period",
            title="Overlapping Leave Period",
            detail=(
                f"Leave period {start_date.isoformat()} to {end_date.isoformat()} "
                "overlaps with an existing period."
            ),
        )


class ResourceInUse(ConflictError):
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        AppException.__init__(
            self,
            status_code=409,
            error_type="resource-in-use",
            title="Resource In Use",
            detail=(
                f"{entity_type} '{entity_id}' is referenced by leave balances "
                "or requests and cannot be deleted."
            ),
        )


class ForbiddenException(AppException):
    """403: insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-failed",
            "title": "Validation Failed",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
