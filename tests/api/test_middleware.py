"""Tests for RequestIDMiddleware and StaffContextMiddleware."""

import pytest
from uuid import UUID, uuid4
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.testclient import TestClient

from api.middleware import RequestIDMiddleware, StaffContextMiddleware, STAFF_HEADER
from utils.user_context import current_staff_id_or_none


@pytest.fixture
def app():
    """Minimal FastAPI app with both middlewares, request ids outermost."""
    app = FastAPI()
    app.add_middleware(StaffContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request):
        staff_id = current_staff_id_or_none()
        return JSONResponse({
            "request_id": request.state.request_id,
            "staff_id": str(staff_id) if staff_id else None,
        })

    @app.get("/health")
    async def health():
        return JSONResponse({"staff_id": str(current_staff_id_or_none())})

    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestRequestIDMiddleware:
    """Tests for RequestIDMiddleware."""

    def test_response_has_request_id_header(self, client):
        """Response includes X-Request-ID header."""
        response = client.get("/test", headers={STAFF_HEADER: str(uuid4())})

        assert "X-Request-ID" in response.headers
        UUID(response.headers["X-Request-ID"])

    def test_request_state_has_request_id(self, client):
        """request.state.request_id is set and matches header."""
        response = client.get("/test", headers={STAFF_HEADER: str(uuid4())})

        assert response.headers["X-Request-ID"] == response.json()["request_id"]

    def test_each_request_gets_unique_id(self, client):
        """Different requests get different IDs."""
        headers = {STAFF_HEADER: str(uuid4())}
        r1 = client.get("/test", headers=headers)
        r2 = client.get("/test", headers=headers)

        assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


class TestStaffContextMiddleware:
    """Tests for StaffContextMiddleware."""

    def test_sets_staff_context_from_header(self, client):
        staff_id = uuid4()

        response = client.get("/test", headers={STAFF_HEADER: str(staff_id)})

        assert response.status_code == 200
        assert response.json()["staff_id"] == str(staff_id)

    def test_missing_header_is_rejected(self, client):
        response = client.get("/test")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_AUTHENTICATED"

    def test_rejection_carries_request_id(self, client):
        response = client.get("/test")

        assert response.json()["meta"]["request_id"] == response.headers["X-Request-ID"]

    def test_malformed_header_is_rejected(self, client):
        response = client.get("/test", headers={STAFF_HEADER: "caixa-01"})

        assert response.status_code == 401

    def test_public_path_needs_no_header(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["staff_id"] == "None"

    def test_context_is_cleared_after_request(self, client):
        client.get("/test", headers={STAFF_HEADER: str(uuid4())})

        assert current_staff_id_or_none() is None
