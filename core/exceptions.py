"""
Typed exceptions for billing failures.

Every exception carries a machine-readable ``code`` class attribute and its
context as attributes, so the HTTP layer and callers never parse messages.
Messages are user-facing (clinic locale) and name the offending entity.

    BillingError
    +-- ValidationError            caller input is malformed or inconsistent
    |   +-- InstallmentSumMismatch
    |   +-- InvalidInstallmentPlan
    +-- StateConflictError         entity state forbids the operation
    |   +-- InvoiceLocked
    |   +-- AttendanceNotBillable
    |   +-- AttendanceAlreadyInvoiced
    |   +-- InvalidAttendanceState
    |   +-- ItemNotRemovable
    |   +-- PaymentConditionInUse
    |   +-- ProductUnavailable
    +-- InventoryWarning           stock cannot cover a billed quantity
    |   +-- InsufficientStock
    +-- NotFoundError
        +-- InvoiceNotFound, AttendanceNotFound, PaymentConditionNotFound,
            ProductNotFound, InvoiceItemNotFound, InstallmentNotFound,
            AppointmentNotFound

No mutation is applied when any of these is raised from inside a transaction.
"""

from uuid import UUID

from utils.money import format_brl


class BillingError(Exception):
    """Base class for all billing errors."""

    code: str = "BILLING_ERROR"


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(BillingError):
    """Caller input is malformed or inconsistent."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InstallmentSumMismatch(ValidationError):
    """Installment amounts do not add up to the invoice total."""

    code: str = "INSTALLMENT_SUM_MISMATCH"

    def __init__(self, expected_cents: int, actual_cents: int):
        self.expected_cents = expected_cents
        self.actual_cents = actual_cents
        super().__init__(
            f"A soma das parcelas ({format_brl(actual_cents)}) não corresponde "
            f"ao total da conta ({format_brl(expected_cents)}).",
            field="installments",
        )


class InvalidInstallmentPlan(ValidationError):
    """Installment plan is structurally invalid (empty, too long, negative)."""

    code: str = "INVALID_INSTALLMENT_PLAN"

    def __init__(self, message: str):
        super().__init__(message, field="installments")


# =============================================================================
# STATE CONFLICTS
# =============================================================================


class StateConflictError(BillingError):
    """The entity's current state forbids the operation."""

    code: str = "STATE_CONFLICT"


class InvoiceLocked(StateConflictError):
    """Invoice is fully paid; items and schedule are read-only."""

    code: str = "INVOICE_LOCKED"

    def __init__(self, invoice_id: UUID):
        self.invoice_id = invoice_id
        super().__init__(
            f"Não é possível alterar a conta {invoice_id}: ela já está quitada."
        )


class AttendanceNotBillable(StateConflictError):
    """Attendance cannot be invoiced yet (appointment not concluded, or cancelled)."""

    code: str = "ATTENDANCE_NOT_BILLABLE"

    def __init__(self, attendance_id: UUID, message: str | None = None):
        self.attendance_id = attendance_id
        super().__init__(message or "Apenas agendamentos concluídos podem ser faturados.")


class AttendanceAlreadyInvoiced(StateConflictError):
    """Attendance is already billed on a different invoice."""

    code: str = "ATTENDANCE_ALREADY_INVOICED"

    def __init__(self, attendance_id: UUID, invoice_id: UUID):
        self.attendance_id = attendance_id
        self.invoice_id = invoice_id
        super().__init__(
            f"O atendimento {attendance_id} já está vinculado à conta {invoice_id}."
        )


class InvalidAttendanceState(StateConflictError):
    """Attendance has no billable owner, or belongs to another owner."""

    code: str = "INVALID_ATTENDANCE_STATE"

    def __init__(self, attendance_id: UUID, message: str):
        self.attendance_id = attendance_id
        super().__init__(message)


class ItemNotRemovable(StateConflictError):
    """Attendance-sourced items are synchronized, never removed by hand."""

    code: str = "ITEM_NOT_REMOVABLE"

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(
            f"O item {item_id} está vinculado a um atendimento e não pode ser removido manualmente."
        )


class PaymentConditionInUse(StateConflictError):
    """Payment condition is referenced by at least one invoice."""

    code: str = "PAYMENT_CONDITION_IN_USE"

    def __init__(self, condition_id: str, invoice_count: int):
        self.condition_id = condition_id
        self.invoice_count = invoice_count
        super().__init__(
            f"A condição de pagamento {condition_id} já foi usada em {invoice_count} conta(s). "
            "Cadastre uma nova opção e atualize as contas antes de removê-la."
        )


class ProductUnavailable(StateConflictError):
    """Product is inactive or not sellable."""

    code: str = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: UUID, product_name: str):
        self.product_id = product_id
        self.product_name = product_name
        super().__init__(f"O produto {product_name} não está disponível para venda.")


# =============================================================================
# INVENTORY
# =============================================================================


class InventoryWarning(BillingError):
    """Stock cannot cover a billed quantity."""

    code: str = "INVENTORY_WARNING"


class InsufficientStock(InventoryWarning):
    """Requested quantity exceeds the product's current stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: UUID, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Estoque insuficiente para o produto {product_name}. "
            f"Solicitado: {requested}, disponível: {available} (faltam {self.shortfall})."
        )

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.available, 0)


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(BillingError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_label: str = "Registro"

    def __init__(self, entity_id: UUID | str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_label} {entity_id} não encontrado(a).")


class InvoiceNotFound(NotFoundError):
    entity_label = "Conta"


class AttendanceNotFound(NotFoundError):
    entity_label = "Atendimento"


class PaymentConditionNotFound(NotFoundError):
    entity_label = "Condição de pagamento"


class ProductNotFound(NotFoundError):
    entity_label = "Produto"


class InvoiceItemNotFound(NotFoundError):
    entity_label = "Item da conta"


class InstallmentNotFound(NotFoundError):
    entity_label = "Parcela"


class AppointmentNotFound(NotFoundError):
    entity_label = "Agendamento"
