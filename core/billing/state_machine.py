"""
Invoice payment state.

Installments are the source of truth. Status and ``paid_at`` are derived from
them on every write and never set directly:

    OPEN            no installment paid (or no installments at all)
    PARTIALLY_PAID  some but not all installments paid
    PAID            every installment paid; items and schedule become read-only

The blocked flag is orthogonal and does not participate in derivation.
"""

from datetime import datetime
from typing import NamedTuple, Protocol, Sequence

from core.exceptions import InvalidInstallmentPlan, InvoiceLocked, ValidationError
from core.models.invoice import Invoice, InvoiceStatus
from core.models.installment import InstallmentDraft
from utils.money import format_brl


class _HasPaidAt(Protocol):
    amount_cents: int
    paid_at: datetime | None


class InvoiceState(NamedTuple):
    status: InvoiceStatus
    paid_at: datetime | None


def derive_status(installments: Sequence[_HasPaidAt]) -> InvoiceStatus:
    """Count paid installments: none -> OPEN, all -> PAID, otherwise PARTIALLY_PAID."""
    if not installments:
        return InvoiceStatus.OPEN
    paid = sum(1 for i in installments if i.paid_at is not None)
    if paid == 0:
        return InvoiceStatus.OPEN
    if paid == len(installments):
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


def derive_paid_at(installments: Sequence[_HasPaidAt]) -> datetime | None:
    """Latest installment payment when fully paid, otherwise None."""
    if derive_status(installments) != InvoiceStatus.PAID:
        return None
    return max(i.paid_at for i in installments)


def derive_state(installments: Sequence[_HasPaidAt]) -> InvoiceState:
    return InvoiceState(derive_status(installments), derive_paid_at(installments))


def paid_amount(installments: Sequence[_HasPaidAt]) -> int:
    return sum(i.amount_cents for i in installments if i.paid_at is not None)


def ensure_mutable(invoice: Invoice) -> None:
    """Raise InvoiceLocked if the invoice is fully paid."""
    if invoice.status == InvoiceStatus.PAID:
        raise InvoiceLocked(invoice.id)


def ensure_no_payment_regression(
    current: Sequence[_HasPaidAt],
    plan: Sequence[_HasPaidAt],
) -> None:
    """
    Reject a plan that would silently undo recorded payments.

    A plan may move money between unpaid installments freely, but its paid
    amount can never be lower than what the current schedule already records.
    """
    current_paid = paid_amount(current)
    plan_paid = paid_amount(plan)
    if plan_paid < current_paid:
        raise ValidationError(
            f"O parcelamento informado registra {format_brl(plan_paid)} pagos, "
            f"mas a conta já possui {format_brl(current_paid)} em pagamentos.",
            field="installments",
        )


def prepare_full_payment(
    plan: Sequence[InstallmentDraft],
    now: datetime,
) -> list[InstallmentDraft]:
    """Stamp every installment without a paid_at with ``now``."""
    if not plan:
        raise InvalidInstallmentPlan(
            "Não é possível quitar uma conta sem ao menos uma parcela."
        )
    return [
        i if i.paid_at is not None else i.model_copy(update={"paid_at": now})
        for i in plan
    ]
