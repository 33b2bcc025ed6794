"""Unified API response format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field
from starlette.requests import Request

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def request_id_of(request: Request | None) -> str | None:
    """Request ID assigned by RequestIDMiddleware, if any."""
    if request is None:
        return None
    return getattr(request.state, "request_id", None)


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


class ErrorCodes:
    """
    Standard error codes for consistent error handling.

    Billing exceptions carry their own ``code``; these are the codes the HTTP
    layer emits itself.
    """

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice
    INVOICE_LOCKED = "INVOICE_LOCKED"
    INSTALLMENT_SUM_MISMATCH = "INSTALLMENT_SUM_MISMATCH"
    INVALID_INSTALLMENT_PLAN = "INVALID_INSTALLMENT_PLAN"
    ITEM_NOT_REMOVABLE = "ITEM_NOT_REMOVABLE"

    # Attendance
    ATTENDANCE_NOT_BILLABLE = "ATTENDANCE_NOT_BILLABLE"
    ATTENDANCE_ALREADY_INVOICED = "ATTENDANCE_ALREADY_INVOICED"
    INVALID_ATTENDANCE_STATE = "INVALID_ATTENDANCE_STATE"

    # Payment Condition
    PAYMENT_CONDITION_IN_USE = "PAYMENT_CONDITION_IN_USE"

    # Inventory
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
