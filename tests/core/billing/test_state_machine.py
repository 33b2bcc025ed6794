"""Tests for invoice payment state derivation."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from core.billing.state_machine import (
    derive_paid_at,
    derive_state,
    derive_status,
    ensure_mutable,
    ensure_no_payment_regression,
    paid_amount,
    prepare_full_payment,
)
from core.exceptions import InvalidInstallmentPlan, InvoiceLocked, ValidationError
from core.models import InstallmentDraft, Invoice, InvoiceStatus

JAN_10 = datetime(2024, 1, 10, tzinfo=timezone.utc)
FEB_10 = datetime(2024, 2, 10, tzinfo=timezone.utc)
MAR_10 = datetime(2024, 3, 10, tzinfo=timezone.utc)


def schedule(*paid_at):
    return [
        InstallmentDraft(due_date=date(2024, 1, 1), amount_cents=1000, paid_at=p)
        for p in paid_at
    ]


class TestDeriveStatus:
    """Three installments: none, some, all paid."""

    def test_none_paid_is_open(self):
        assert derive_status(schedule(None, None, None)) == InvoiceStatus.OPEN

    @pytest.mark.parametrize("paid_at", [
        (JAN_10, None, None),
        (JAN_10, FEB_10, None),
        (None, None, MAR_10),
    ])
    def test_some_paid_is_partially_paid(self, paid_at):
        assert derive_status(schedule(*paid_at)) == InvoiceStatus.PARTIALLY_PAID

    def test_all_paid_is_paid(self):
        assert derive_status(schedule(JAN_10, FEB_10, MAR_10)) == InvoiceStatus.PAID

    def test_no_installments_is_open(self):
        assert derive_status([]) == InvoiceStatus.OPEN


class TestDerivePaidAt:

    def test_latest_payment_when_fully_paid(self):
        assert derive_paid_at(schedule(FEB_10, JAN_10, MAR_10)) == MAR_10

    def test_none_while_partially_paid(self):
        assert derive_paid_at(schedule(JAN_10, None)) is None

    def test_state_pairs_status_and_paid_at(self):
        state = derive_state(schedule(JAN_10, FEB_10))
        assert state.status == InvoiceStatus.PAID
        assert state.paid_at == FEB_10


class TestPaidAmount:

    def test_sums_only_paid(self):
        assert paid_amount(schedule(JAN_10, None, FEB_10)) == 2000


class TestEnsureMutable:

    def _invoice(self, status):
        return Invoice(id=uuid4(), owner_id=uuid4(), status=status, due_date=date(2024, 1, 8))

    def test_paid_invoice_is_locked(self):
        invoice = self._invoice(InvoiceStatus.PAID)
        with pytest.raises(InvoiceLocked) as exc:
            ensure_mutable(invoice)
        assert exc.value.invoice_id == invoice.id
        assert "quitada" in str(exc.value)

    @pytest.mark.parametrize("status", [InvoiceStatus.OPEN, InvoiceStatus.PARTIALLY_PAID])
    def test_unpaid_invoice_is_mutable(self, status):
        ensure_mutable(self._invoice(status))


class TestEnsureNoPaymentRegression:

    def test_plan_dropping_a_payment_is_rejected(self):
        with pytest.raises(ValidationError, match="já possui"):
            ensure_no_payment_regression(schedule(JAN_10, None), schedule(None, None))

    def test_plan_keeping_payments_is_accepted(self):
        ensure_no_payment_regression(schedule(JAN_10, None), schedule(JAN_10, FEB_10))


class TestPrepareFullPayment:

    def test_stamps_unpaid_and_keeps_existing_dates(self):
        result = prepare_full_payment(schedule(JAN_10, None), MAR_10)
        assert [i.paid_at for i in result] == [JAN_10, MAR_10]

    def test_rejects_empty_plan(self):
        with pytest.raises(InvalidInstallmentPlan):
            prepare_full_payment([], MAR_10)
