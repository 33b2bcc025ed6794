"""Shared test fixtures for the billing test suite."""

import os
from datetime import date
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Drop settings cached before the env vars were loaded
from clients.vault_client import load_database_settings
load_database_settings.cache_clear()

from api.app import build_services
from core.config import BillingConfig
from core.models import (
    AppointmentStatus,
    Attendance,
    AttendanceProductLine,
    AttendanceServiceLine,
    AttendanceStatus,
)
from fake_billing_store import FakeBillingStore
from utils.user_context import staff_context, clear_current_staff_id


# =============================================================================
# TEST STAFF CONSTANTS
# =============================================================================

# Cashier acting in most tests
TEST_STAFF_ID = UUID("00000000-0000-0000-0000-0000000000a1")

# Owner (tutor) billed in most tests
TEST_OWNER_ID = UUID("00000000-0000-0000-0000-0000000000b1")
OTHER_OWNER_ID = UUID("00000000-0000-0000-0000-0000000000b2")


# =============================================================================
# STAFF CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_staff_context():
    """Ensure clean staff context before and after each test."""
    clear_current_staff_id()
    yield
    clear_current_staff_id()


@pytest.fixture
def staff_id() -> UUID:
    return TEST_STAFF_ID


@pytest.fixture
def owner_id() -> UUID:
    return TEST_OWNER_ID


@pytest.fixture
def as_cashier(staff_id):
    """Run the test as the cashier."""
    with staff_context(staff_id):
        yield staff_id


# =============================================================================
# BILLING FIXTURES (in-memory)
# =============================================================================


@pytest.fixture
def store() -> FakeBillingStore:
    return FakeBillingStore()


@pytest.fixture
def config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def services(store, config):
    return build_services(store, config)


@pytest.fixture
def invoice_service(services):
    return services["invoice"]


@pytest.fixture
def payment_condition_service(services):
    return services["payment_condition"]


@pytest.fixture
def attendance_service(services):
    return services["attendance"]


@pytest.fixture
def event_bus(services):
    return services["event_bus"]


@pytest.fixture
def make_attendance(store, owner_id):
    """
    Factory that seeds an attendance.

    Amounts are in cents. ``services`` and ``products`` take
    (name, quantity, unit_price_cents) and (product, quantity, unit_price_cents).
    """

    def factory(
        services: list[tuple[str, int, int]] | None = None,
        products: list[tuple] | None = None,
        owner=owner_id,
        appointment_status: AppointmentStatus | None = AppointmentStatus.CONCLUDED,
        status: AttendanceStatus = AttendanceStatus.CONCLUDED,
        base_price_cents: int = 15000,
        performed_at: date = date(2024, 1, 1),
        service_type: str = "Consulta",
    ) -> Attendance:
        appointment_id = None
        if appointment_status is not None:
            appointment_id = store.add_appointment(appointment_status)
        attendance = Attendance(
            id=uuid4(),
            animal_id=uuid4(),
            owner_id=owner,
            appointment_id=appointment_id,
            appointment_status=appointment_status,
            status=status,
            service_type=service_type,
            performed_at=performed_at,
            base_price_cents=base_price_cents,
            service_lines=[
                AttendanceServiceLine(
                    id=uuid4(),
                    definition_id=uuid4(),
                    definition_name=name,
                    quantity=quantity,
                    unit_price_cents=price,
                )
                for name, quantity, price in (services or [])
            ],
            product_lines=[
                AttendanceProductLine(
                    id=uuid4(),
                    product_id=product.id,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price_cents=price,
                )
                for product, quantity, price in (products or [])
            ],
        )
        return store.add_attendance(attendance)

    return factory


@pytest.fixture
def product_line_for(store):
    """Factory for an attendance product line backed by a freshly seeded product."""

    def factory(quantity: int, unit_price_cents: int, stock: int = 10) -> AttendanceProductLine:
        product = store.add_product(stock=stock, price_cents=unit_price_cents)
        return AttendanceProductLine(
            id=uuid4(),
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
        )

    return factory


# =============================================================================
# DATABASE FIXTURES (integration, opt-in)
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """
    Session-scoped PostgresClient against a disposable database.

    Skipped unless BILLING_TEST_DATABASE_URL is set. The schema is applied once.
    """
    url = os.getenv("BILLING_TEST_DATABASE_URL")
    if not url:
        pytest.skip("BILLING_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url)
    schema = (Path(__file__).parent.parent / "db" / "schema.sql").read_text()
    client.execute(schema)
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty the billing tables (payment conditions keep their seeds)."""
    db.execute("""
        TRUNCATE
            audit_log, stock_movements, invoice_installments, invoice_items,
            invoice_attendances, invoices, attendance_product_lines,
            attendance_service_lines, attendances, appointments, products
        CASCADE
    """)
    yield db
