"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
R$ 10,00 = 1000 cents. The total is derived from the items and the status
from the installments; neither is ever edited directly.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.installment import Installment, InstallmentDraft
from core.models.invoice_item import InvoiceItem
from core.models.payment_condition import PaymentCondition
from utils.money import cents_to_decimal


class InvoiceStatus(str, Enum):
    """Invoice payment status, derived from installments."""

    OPEN = "OPEN"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    InvoiceStatus.OPEN: "Em aberto",
    InvoiceStatus.PARTIALLY_PAID: "Parcialmente paga",
    InvoiceStatus.PAID: "Quitada",
}


class PaymentMethod(str, Enum):
    """How the owner pays."""

    CASH = "DINHEIRO"
    CREDIT_CARD = "CARTAO_CREDITO"
    DEBIT_CARD = "CARTAO_DEBITO"
    PIX = "PIX"
    BANK_SLIP = "BOLETO"
    OTHER = "OUTROS"


class Invoice(BaseModel):
    """Full invoice entity with its ordered items and installments."""

    id: UUID
    owner_id: UUID
    responsible_id: UUID | None = None
    status: InvoiceStatus = InvoiceStatus.OPEN
    is_blocked: bool = False
    total_cents: int = 0
    due_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_condition_id: str | None = None
    payment_details_defined: bool = False
    payment_notes: str | None = None
    paid_at: datetime | None = None
    attendance_ids: list[UUID] = Field(default_factory=list)
    items: list[InvoiceItem] = Field(default_factory=list)
    installments: list[Installment] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def paid_cents(self) -> int:
        """Sum of installments already paid."""
        return sum(i.amount_cents for i in self.installments if i.is_paid)

    @property
    def balance_due_cents(self) -> int:
        return self.total_cents - self.paid_cents

    @property
    def total_amount(self) -> str:
        """Total as a decimal string for display ("70.00")."""
        return str(cents_to_decimal(self.total_cents))


class InvoiceCreateRequest(BaseModel):
    """Create an invoice from an appointment or directly from an attendance."""

    appointment_id: UUID | None = None
    attendance_id: UUID | None = None
    due_date: date | None = None

    @model_validator(mode="after")
    def require_exactly_one_source(self) -> "InvoiceCreateRequest":
        if (self.appointment_id is None) == (self.attendance_id is None):
            raise ValueError("Informe appointment_id ou attendance_id (apenas um).")
        return self


class InvoiceAdjust(BaseModel):
    """Adjust payment details of an unpaid invoice. All fields optional."""

    due_date: date | None = None
    payment_method: PaymentMethod | None = None
    payment_condition_id: str | None = None
    installments: list[InstallmentDraft] | None = None
    payment_notes: str | None = Field(None, max_length=500)


class InvoicePayment(BaseModel):
    """Settle an invoice with a full installment plan."""

    payment_method: PaymentMethod | None = None
    payment_condition_id: str | None = None
    installments: list[InstallmentDraft] = Field(..., min_length=1)
    payment_notes: str | None = Field(None, max_length=500)


class InstallmentPay(BaseModel):
    """Mark a single installment paid."""

    paid_at: datetime | None = None


class AttendanceAttach(BaseModel):
    attendance_id: UUID


class InvoiceBlock(BaseModel):
    is_blocked: bool


class InvoiceFilter(BaseModel):
    """List filter for invoices. All fields optional."""

    owner_id: UUID | None = None
    status: InvoiceStatus | None = None
    due_from: date | None = None
    due_to: date | None = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class InvoiceSummary(BaseModel):
    """Totals over a filtered invoice list."""

    count: int = 0
    total_cents: int = 0
    paid_cents: int = 0
    open_cents: int = 0


class StockWarningOut(BaseModel):
    """Stock adjustment that was skipped and will be retried."""

    item_id: UUID
    product_id: UUID
    product_name: str
    requested: int
    available: int
    shortfall: int
    message: str


class InvoiceResult(BaseModel):
    """Invoice plus what a mutation needs to tell the caller."""

    invoice: Invoice
    payment_condition_details: PaymentCondition | None = None
    stock_warnings: list[StockWarningOut] = Field(default_factory=list)
