"""Request-scoped middleware for API requests."""

import logging
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.user_context import set_current_staff_id, clear_current_staff_id

logger = logging.getLogger(__name__)

STAFF_HEADER = "X-Staff-Id"

PUBLIC_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StaffContextMiddleware(BaseHTTPMiddleware):
    """
    Sets the acting staff member from the authentication gateway's header.

    Authentication happens upstream; requests reaching this service carry the
    staff member's id in X-Staff-Id. Requests without a valid id are rejected,
    except for the public paths.
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        raw = request.headers.get(STAFF_HEADER)
        try:
            staff_id = UUID(raw) if raw else None
        except ValueError:
            staff_id = None

        if staff_id is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Identificação do colaborador ausente ou inválida.",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        set_current_staff_id(staff_id)
        try:
            return await call_next(request)
        finally:
            clear_current_staff_id()
