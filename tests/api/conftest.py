"""API test fixtures: staff-identified TestClient over in-memory services."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from api.middleware import STAFF_HEADER


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with staff context, request ids, error handlers and billing routes."""
    return create_app(services)


@pytest.fixture
def client(app, staff_id):
    """Client identified as the cashier by the gateway header."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers[STAFF_HEADER] = str(staff_id)
    return c


@pytest.fixture
def unauthed_client(app):
    """Client without the gateway header."""
    return TestClient(app, raise_server_exceptions=False)
