"""
Application wiring.

build_services() assembles the billing services around one repository and
subscribes the event handlers; create_app() mounts them on a FastAPI app.
"""

import logging

from fastapi import FastAPI, Request

from api.appointments import create_appointment_router
from api.base import success_response, request_id_of
from api.errors import register_error_handlers
from api.invoices import create_invoice_router
from api.middleware import RequestIDMiddleware, StaffContextMiddleware
from api.payment_conditions import create_payment_condition_router
from core.audit import AuditLogger
from core.billing.stock_guard import StockReconciliationGuard
from core.billing_repository import BillingRepository
from core.config import BillingConfig
from core.event_bus import EventBus
from core.handlers.appointment_completion_handler import handle_appointment_completed
from core.handlers.stock_low_handler import handle_product_stock_low
from core.services.attendance_service import AttendanceService
from core.services.invoice_service import InvoiceService
from core.services.payment_condition_service import PaymentConditionService

logger = logging.getLogger(__name__)


def build_services(repository: BillingRepository, config: BillingConfig | None = None) -> dict:
    """Create the services and subscribe the event handlers."""
    config = config or BillingConfig()
    event_bus = EventBus()
    audit = AuditLogger(repository)
    stock_guard = StockReconciliationGuard(
        repository, event_bus, warn_on_low_stock=config.warn_on_low_stock
    )

    invoice_service = InvoiceService(repository, audit, event_bus, stock_guard, config)
    services = {
        "event_bus": event_bus,
        "audit": audit,
        "stock_guard": stock_guard,
        "invoice": invoice_service,
        "payment_condition": PaymentConditionService(repository, audit),
        "attendance": AttendanceService(repository, event_bus),
    }

    event_bus.subscribe("AppointmentCompleted", handle_appointment_completed(invoice_service))
    event_bus.subscribe("ProductStockLow", handle_product_stock_low())

    return services


def create_app(services: dict) -> FastAPI:
    """FastAPI app with staff context, request ids, error handlers and billing routes."""
    app = FastAPI(title="Clinic Billing")
    app.add_middleware(StaffContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health(request: Request):
        return success_response({"status": "ok"}, request_id_of(request)).model_dump(mode="json")

    app.include_router(create_invoice_router(services))
    app.include_router(create_payment_condition_router(services))
    app.include_router(create_appointment_router(services))

    return app


def create_app_from_vault(config: BillingConfig | None = None) -> FastAPI:
    """Production entry point: database settings from Vault."""
    from clients.postgres_client import PostgresClient
    from clients.vault_client import load_database_settings

    settings = load_database_settings()
    db = PostgresClient(settings.url, settings.pool_min, settings.pool_max)
    repository = BillingRepository(db)
    logger.info("Billing API starting")
    return create_app(build_services(repository, config))
