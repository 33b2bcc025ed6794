"""
Domain events for clinic billing.

Immutable event objects that represent state changes in the billing domain.
A service publishes what happened and handlers react without the publisher
knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, synchronize, paid)
- AppointmentEvent: Appointment lifecycle (completed)
- StockEvent: Inventory side effects of billing (low stock)

Events carry the domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(BillingEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """An invoice was created from an attendance."""
    invoice: Any = None  # Invoice, using Any to avoid circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceSynchronized(InvoiceEvent):
    """A reconciliation pass changed an invoice's items."""
    invoice: Any = None
    created: int = 0
    updated: int = 0
    deleted: int = 0

    @classmethod
    def create(cls, invoice: Any, created: int, updated: int, deleted: int) -> "InvoiceSynchronized":
        return cls(invoice=invoice, created=created, updated=updated, deleted=deleted)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Every installment of an invoice is paid."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


# =============================================================================
# APPOINTMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class AppointmentEvent(BillingEvent):
    """Events related to appointment lifecycle."""
    pass


@dataclass(frozen=True)
class AppointmentCompleted(AppointmentEvent):
    """An appointment and its attendance were concluded."""
    appointment_id: UUID | None = None
    attendance_id: UUID | None = None

    @classmethod
    def create(cls, appointment_id: UUID, attendance_id: UUID | None) -> "AppointmentCompleted":
        return cls(appointment_id=appointment_id, attendance_id=attendance_id)


# =============================================================================
# STOCK EVENTS
# =============================================================================


@dataclass(frozen=True)
class StockEvent(BillingEvent):
    """Events related to inventory changes caused by billing."""
    pass


@dataclass(frozen=True)
class ProductStockLow(StockEvent):
    """A sale left a product at or below its minimum stock."""
    product: Any = None  # Product after the decrement

    @classmethod
    def create(cls, product: Any) -> "ProductStockLow":
        return cls(product=product)
