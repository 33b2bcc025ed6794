"""
Invoice service for clinic billing.

Invoices are created from attendances and kept in step with them. Every
mutation runs in one transaction that starts by locking the invoice row;
the stock pass runs after the commit, one transaction per item.
"""

import logging
from datetime import date, datetime
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.billing.scheduler import build_schedule, normalize_plan, rebalance_schedule
from core.billing.state_machine import (
    derive_state,
    ensure_mutable,
    ensure_no_payment_regression,
    prepare_full_payment,
)
from core.billing.stock_guard import StockPassResult, StockReconciliationGuard
from core.billing.synchronizer import SyncResult, ensure_attendance_billable, synchronize
from core.billing_repository import BillingRepository, BillingTransaction
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import BillingEvent, InvoiceCreated, InvoicePaid, InvoiceSynchronized
from core.exceptions import (
    AppointmentNotFound,
    AttendanceAlreadyInvoiced,
    AttendanceNotBillable,
    AttendanceNotFound,
    InstallmentNotFound,
    InsufficientStock,
    InvoiceItemNotFound,
    InvoiceNotFound,
    ItemNotRemovable,
    PaymentConditionNotFound,
    ProductNotFound,
    ProductUnavailable,
    StateConflictError,
    ValidationError,
)
from core.models import (
    AppointmentStatus,
    Attendance,
    Installment,
    InstallmentDraft,
    Invoice,
    InvoiceAdjust,
    InvoiceFilter,
    InvoiceItem,
    InvoicePayment,
    InvoiceResult,
    InvoiceStatus,
    InvoiceSummary,
    ManualItemCreate,
    ManualOrigin,
    PaymentCondition,
)
from utils.timezone import add_days, as_utc, now_utc
from utils.user_context import current_staff_id_or_none

logger = logging.getLogger(__name__)

_HEADER_EXCLUDE = {"items", "installments", "attendance_ids", "created_at", "updated_at"}


def _header(invoice: Invoice) -> dict:
    """Invoice fields that audit entries compare."""
    return invoice.model_dump(mode="json", exclude=_HEADER_EXCLUDE)


def _schedule(installments: list[Installment]) -> list[dict]:
    return [
        {
            "sequence": i.sequence,
            "due_date": i.due_date.isoformat(),
            "amount_cents": i.amount_cents,
            "paid_at": i.paid_at.isoformat() if i.paid_at else None,
        }
        for i in installments
    ]


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        repository: BillingRepository,
        audit: AuditLogger,
        event_bus: EventBus,
        stock_guard: StockReconciliationGuard,
        config: BillingConfig | None = None,
    ):
        self.repository = repository
        self.audit = audit
        self.event_bus = event_bus
        self.stock_guard = stock_guard
        self.config = config or BillingConfig()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _lock(self, tx: BillingTransaction, invoice_id: UUID) -> Invoice:
        invoice = tx.lock_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFound(invoice_id)
        return invoice

    def _condition(self, tx: BillingTransaction, condition_id: str) -> PaymentCondition:
        condition = tx.get_payment_condition(condition_id)
        if condition is None:
            raise PaymentConditionNotFound(condition_id)
        return condition

    def _with_state(self, invoice: Invoice, now: datetime, **changes) -> Invoice:
        """Apply changes, then re-derive status and paid_at from the installments."""
        invoice = invoice.model_copy(update=changes)
        state = derive_state(invoice.installments)
        return invoice.model_copy(
            update={"status": state.status, "paid_at": state.paid_at, "updated_at": now}
        )

    def _default_schedule(
        self, tx: BillingTransaction, invoice: Invoice, total_cents: int
    ) -> list[InstallmentDraft]:
        if invoice.payment_condition_id is not None:
            condition = self._condition(tx, invoice.payment_condition_id)
            return build_schedule(
                total_cents, condition.installment_count, condition.day_offset, invoice.due_date
            )
        return build_schedule(total_cents, 1, 0, invoice.due_date)

    def _fit_schedule(
        self, tx: BillingTransaction, invoice: Invoice, total_cents: int
    ) -> list[Installment]:
        """
        Bring the schedule in line with a new total.

        Paid installments are kept; the outstanding balance is spread over the
        unpaid ones. An invoice without installments gets its default schedule.
        """
        current = invoice.installments
        if current and sum(i.amount_cents for i in current) == total_cents:
            return current
        if not current:
            drafts = self._default_schedule(tx, invoice, total_cents)
        else:
            drafts = rebalance_schedule([i.to_draft() for i in current], total_cents)
        return tx.replace_installments(invoice.id, drafts)

    def _persist_sync(
        self, tx: BillingTransaction, invoice: Invoice, sync: SyncResult
    ) -> list[InvoiceItem]:
        """Write a synchronization result. Returns the stored items in order."""
        for item in sync.deleted:
            self.stock_guard.restore_item(tx, invoice.id, item)
        tx.delete_items([item.id for item in sync.deleted])
        tx.update_items(sync.updated)
        stored = {item.id: item for item in tx.insert_items(sync.created)}
        return [stored.get(item.id, item) for item in sync.items]

    def _synchronize_locked(
        self, tx: BillingTransaction, invoice: Invoice, now: datetime
    ) -> tuple[Invoice, SyncResult]:
        """Run one reconciliation pass on a locked invoice and persist it."""
        attendances = []
        for attendance_id in invoice.attendance_ids:
            attendance = tx.get_attendance(attendance_id)
            if attendance is None:
                raise AttendanceNotFound(attendance_id)
            attendances.append(attendance)

        sync = synchronize(invoice, attendances)
        if not sync.has_changes:
            return invoice, sync

        before = _header(invoice)
        items = self._persist_sync(tx, invoice, sync)
        installments = self._fit_schedule(tx, invoice, sync.total_cents)
        invoice = self._with_state(
            invoice, now, items=items, installments=installments, total_cents=sync.total_cents
        )
        tx.update_invoice(invoice)

        self.audit.log_change(
            tx,
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.SYNC,
            changes={
                "created": len(sync.created),
                "updated": len(sync.updated),
                "deleted": len(sync.deleted),
                **compute_changes(before, _header(invoice)),
            },
        )
        return invoice, sync

    def _result(
        self,
        tx: BillingTransaction,
        invoice: Invoice,
    ) -> InvoiceResult:
        condition = None
        if invoice.payment_condition_id is not None:
            condition = tx.get_payment_condition(invoice.payment_condition_id)
        return InvoiceResult(invoice=invoice, payment_condition_details=condition)

    def _run_stock_pass(self, invoice_id: UUID, settled: bool) -> StockPassResult:
        """
        Stock pass after a committed mutation.

        The invoice write already stands; a failing pass is logged and the
        next pass retries whatever was not applied.
        """
        try:
            return self.stock_guard.reconcile(invoice_id, settled=settled)
        except Exception:
            logger.exception("Stock pass failed for invoice %s", invoice_id)
            return StockPassResult()

    def _finish(
        self,
        result: InvoiceResult,
        was_paid: bool,
        events: list[BillingEvent],
    ) -> InvoiceResult:
        """Post-commit work: publish events, run the stock pass, attach warnings."""
        invoice = result.invoice
        if not was_paid and invoice.status == InvoiceStatus.PAID:
            events.append(InvoicePaid.create(invoice))
        for event in events:
            self.event_bus.publish(event)

        stock = self._run_stock_pass(invoice.id, settled=was_paid)
        result.stock_warnings = [w.to_out() for w in stock.warnings]
        return result

    # =========================================================================
    # CREATION & SYNCHRONIZATION
    # =========================================================================

    def create_for_attendance(
        self,
        attendance_id: UUID,
        responsible_id: UUID | None = None,
        due_date: date | None = None,
    ) -> InvoiceResult:
        """
        Create the invoice for a billable attendance.

        If the attendance is already invoiced, that invoice is resynchronized
        and returned instead (a paid one is returned unchanged). An existing
        invoice keeps its due date and responsible staff member.

        Args:
            attendance_id: Attendance to bill
            responsible_id: Staff member responsible (defaults to current context)
            due_date: Due date of the new invoice (defaults to
                ``default_due_days`` after the attendance date)

        Returns:
            Invoice with synchronized items and a single installment due
            on the due date

        Raises:
            AttendanceNotFound: Attendance does not exist
            AttendanceNotBillable: Appointment not concluded, or attendance cancelled
            InvalidAttendanceState: Attendance has no owner
        """
        now = now_utc()
        events: list[BillingEvent] = []

        with self.repository.transaction() as tx:
            attendance = tx.get_attendance(attendance_id, for_update=True)
            if attendance is None:
                raise AttendanceNotFound(attendance_id)

            existing_id = tx.find_invoice_id_for_attendance(attendance_id)
            if existing_id is not None:
                invoice = self._lock(tx, existing_id)
                was_paid = invoice.is_paid
                if not was_paid:
                    invoice, sync = self._synchronize_locked(tx, invoice, now)
                    if sync.has_changes:
                        events.append(
                            InvoiceSynchronized.create(
                                invoice, len(sync.created), len(sync.updated), len(sync.deleted)
                            )
                        )
                result = self._result(tx, invoice)
            else:
                ensure_attendance_billable(attendance)
                was_paid = False
                due_date = due_date or add_days(attendance.performed_at, self.config.default_due_days)
                invoice = Invoice(
                    id=uuid4(),
                    owner_id=attendance.owner_id,
                    responsible_id=responsible_id or current_staff_id_or_none(),
                    due_date=due_date,
                    payment_method=self.config.default_payment_method,
                    attendance_ids=[attendance.id],
                    created_at=now,
                    updated_at=now,
                )
                tx.insert_invoice(invoice)
                tx.link_attendance(invoice.id, attendance.id)

                sync = synchronize(invoice, [attendance])
                items = tx.insert_items(sync.created)
                installments = tx.replace_installments(
                    invoice.id, build_schedule(sync.total_cents, 1, 0, due_date)
                )
                invoice = self._with_state(
                    invoice, now, items=items, installments=installments, total_cents=sync.total_cents
                )
                tx.update_invoice(invoice)

                self.audit.log_change(
                    tx,
                    entity_type="invoice",
                    entity_id=invoice.id,
                    action=AuditAction.CREATE,
                    changes={
                        "created": {
                            **_header(invoice),
                            "attendance_id": str(attendance.id),
                            "items": len(items),
                            "installments": _schedule(installments),
                        }
                    },
                )
                events.append(InvoiceCreated.create(invoice))
                result = self._result(tx, invoice)

        return self._finish(result, was_paid, events)

    def create_for_appointment(
        self,
        appointment_id: UUID,
        responsible_id: UUID | None = None,
        due_date: date | None = None,
    ) -> InvoiceResult:
        """
        Create the invoice for the attendance of a concluded appointment.

        Raises:
            AppointmentNotFound: Appointment does not exist
            AttendanceNotBillable: Appointment is not concluded
            AttendanceNotFound: Appointment has no attendance record
        """
        with self.repository.transaction() as tx:
            attendance = tx.get_attendance_by_appointment(appointment_id)
            if attendance is None:
                status = tx.get_appointment_status(appointment_id)
                if status is None:
                    raise AppointmentNotFound(appointment_id)
                if status != AppointmentStatus.CONCLUDED:
                    raise AttendanceNotBillable(appointment_id)
                raise AttendanceNotFound(appointment_id)

        return self.create_for_attendance(attendance.id, responsible_id, due_date)

    def invoice_id_for_attendance(self, attendance_id: UUID) -> UUID | None:
        with self.repository.transaction() as tx:
            return tx.find_invoice_id_for_attendance(attendance_id)

    def synchronize(self, invoice_id: UUID) -> InvoiceResult:
        """
        Explicit reconciliation pass.

        Raises:
            InvoiceNotFound: Invoice does not exist
            InvoiceLocked: Invoice is fully paid
            InvalidAttendanceState: A linked attendance lost its owner or changed owner
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            invoice, sync = self._synchronize_locked(tx, invoice, now)
            result = self._result(tx, invoice)

        events: list[BillingEvent] = []
        if sync.has_changes:
            events.append(
                InvoiceSynchronized.create(
                    invoice, len(sync.created), len(sync.updated), len(sync.deleted)
                )
            )
        return self._finish(result, False, events)

    def attach_attendance(self, invoice_id: UUID, attendance_id: UUID) -> InvoiceResult:
        """
        Aggregate a further attendance of the same owner onto an unpaid invoice.

        Raises:
            AttendanceAlreadyInvoiced: Attendance is billed on another invoice
            AttendanceNotBillable: Attendance is not billable yet
            InvalidAttendanceState: Attendance belongs to another owner
            InvoiceLocked: Invoice is fully paid
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            attendance = tx.get_attendance(attendance_id, for_update=True)
            if attendance is None:
                raise AttendanceNotFound(attendance_id)
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)

            existing_id = tx.find_invoice_id_for_attendance(attendance_id)
            if existing_id is not None and existing_id != invoice.id:
                raise AttendanceAlreadyInvoiced(attendance_id, existing_id)
            if existing_id is None:
                ensure_attendance_billable(attendance)
                tx.link_attendance(invoice.id, attendance_id)
                invoice = invoice.model_copy(
                    update={"attendance_ids": invoice.attendance_ids + [attendance_id]}
                )

            invoice, sync = self._synchronize_locked(tx, invoice, now)
            result = self._result(tx, invoice)

        events: list[BillingEvent] = []
        if sync.has_changes:
            events.append(
                InvoiceSynchronized.create(
                    invoice, len(sync.created), len(sync.updated), len(sync.deleted)
                )
            )
        return self._finish(result, False, events)

    # =========================================================================
    # PAYMENT DETAILS
    # =========================================================================

    def adjust(self, invoice_id: UUID, data: InvoiceAdjust) -> InvoiceResult:
        """
        Adjust due date, payment method, payment condition or installments.

        Without explicit installments the schedule is rebuilt from the
        (new) payment condition. An invoice with recorded payments only
        accepts a condition change together with an explicit plan.

        Raises:
            InvoiceLocked: Invoice is fully paid
            PaymentConditionNotFound: Unknown condition id
            InstallmentSumMismatch / InvalidInstallmentPlan: Bad plan
            ValidationError: Plan would undo recorded payments
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            before = _header(invoice)
            before_schedule = _schedule(invoice.installments)

            changes: dict = {}
            if data.due_date is not None:
                changes["due_date"] = data.due_date
            if data.payment_method is not None:
                changes["payment_method"] = data.payment_method
            if data.payment_notes is not None:
                changes["payment_notes"] = data.payment_notes

            condition = None
            if data.payment_condition_id is not None:
                condition = self._condition(tx, data.payment_condition_id)
                changes["payment_condition_id"] = condition.id
            condition_changed = (
                condition is not None and condition.id != invoice.payment_condition_id
            )
            due_date_changed = data.due_date is not None and data.due_date != invoice.due_date
            anchor = data.due_date or invoice.due_date
            has_payments = any(i.is_paid for i in invoice.installments)

            plan: list[InstallmentDraft] | None = None
            if data.installments is not None:
                plan = normalize_plan(
                    data.installments,
                    invoice.total_cents,
                    self.config.amount_tolerance_cents,
                    self.config.max_installments,
                )
                ensure_no_payment_regression(invoice.installments, plan)
            elif condition_changed:
                if has_payments:
                    raise ValidationError(
                        "A conta já possui parcelas pagas. Informe o novo parcelamento "
                        "junto com a condição de pagamento.",
                        field="installments",
                    )
                plan = build_schedule(
                    invoice.total_cents, condition.installment_count, condition.day_offset, anchor
                )
            elif due_date_changed and not has_payments:
                current_condition = condition
                if current_condition is None and invoice.payment_condition_id is not None:
                    current_condition = self._condition(tx, invoice.payment_condition_id)
                if current_condition is not None:
                    plan = build_schedule(
                        invoice.total_cents,
                        current_condition.installment_count,
                        current_condition.day_offset,
                        anchor,
                    )
                elif len(invoice.installments) <= 1:
                    plan = build_schedule(invoice.total_cents, 1, 0, anchor)

            if plan is not None:
                changes["installments"] = tx.replace_installments(invoice.id, plan)
            if plan is not None or condition is not None or data.payment_method is not None:
                changes["payment_details_defined"] = True

            invoice = self._with_state(invoice, now, **changes)
            tx.update_invoice(invoice)

            audit_changes = compute_changes(before, _header(invoice))
            if plan is not None:
                audit_changes["installments"] = {
                    "old": before_schedule,
                    "new": _schedule(invoice.installments),
                }
            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes=audit_changes,
            )
            result = self._result(tx, invoice)

        return self._finish(result, False, [])

    def mark_as_paid(self, invoice_id: UUID, data: InvoicePayment) -> InvoiceResult:
        """
        Settle an invoice with a full installment plan.

        Installments without ``paid_at`` are stamped with the current time.

        Raises:
            InvoiceLocked: Invoice is already fully paid
            InstallmentSumMismatch: Plan does not add up to the total
            InvalidInstallmentPlan: Empty plan
            ValidationError: Plan would undo recorded payments
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            before = _header(invoice)
            before_schedule = _schedule(invoice.installments)

            changes: dict = {"payment_details_defined": True}
            if data.payment_condition_id is not None:
                changes["payment_condition_id"] = self._condition(tx, data.payment_condition_id).id
            if data.payment_method is not None:
                changes["payment_method"] = data.payment_method
            if data.payment_notes is not None:
                changes["payment_notes"] = data.payment_notes

            plan = normalize_plan(
                data.installments,
                invoice.total_cents,
                self.config.amount_tolerance_cents,
                self.config.max_installments,
            )
            ensure_no_payment_regression(invoice.installments, plan)
            plan = prepare_full_payment(plan, now)
            changes["installments"] = tx.replace_installments(invoice.id, plan)

            invoice = self._with_state(invoice, now, **changes)
            tx.update_invoice(invoice)

            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.PAYMENT,
                changes={
                    **compute_changes(before, _header(invoice)),
                    "installments": {"old": before_schedule, "new": _schedule(invoice.installments)},
                },
            )
            result = self._result(tx, invoice)

        return self._finish(result, False, [])

    def pay_installment(
        self,
        invoice_id: UUID,
        installment_id: UUID,
        paid_at: datetime | None = None,
    ) -> InvoiceResult:
        """
        Mark one installment paid.

        Raises:
            InvoiceLocked: Invoice is already fully paid
            InstallmentNotFound: Installment is not part of this invoice
            StateConflictError: Installment already paid
        """
        now = now_utc()
        paid_at = as_utc(paid_at) if paid_at is not None else now

        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            target = next((i for i in invoice.installments if i.id == installment_id), None)
            if target is None:
                raise InstallmentNotFound(installment_id)
            if target.is_paid:
                raise StateConflictError(
                    f"A parcela {target.sequence} da conta {invoice.id} já foi paga."
                )

            before = _header(invoice)
            tx.mark_installment_paid(installment_id, paid_at)
            installments = [
                i.model_copy(update={"paid_at": paid_at}) if i.id == installment_id else i
                for i in invoice.installments
            ]
            invoice = self._with_state(invoice, now, installments=installments)
            tx.update_invoice(invoice)

            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.PAYMENT,
                changes={
                    **compute_changes(before, _header(invoice)),
                    "installment": {
                        "sequence": target.sequence,
                        "amount_cents": target.amount_cents,
                        "paid_at": paid_at.isoformat(),
                    },
                },
            )
            result = self._result(tx, invoice)

        return self._finish(result, False, [])

    def set_blocked(self, invoice_id: UUID, blocked: bool) -> InvoiceResult:
        """Set or clear the administrative hold flag. Allowed in any status."""
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            if invoice.is_blocked == blocked:
                return self._result(tx, invoice)
            updated = invoice.model_copy(update={"is_blocked": blocked, "updated_at": now})
            tx.update_invoice(updated)
            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes={"is_blocked": {"old": invoice.is_blocked, "new": blocked}},
            )
            return self._result(tx, updated)

    # =========================================================================
    # MANUAL ITEMS
    # =========================================================================

    def add_manual_item(self, invoice_id: UUID, data: ManualItemCreate) -> InvoiceResult:
        """
        Add a free item. Its product stock is taken by the stock pass.

        Raises:
            InvoiceLocked: Invoice is fully paid
            ProductNotFound / ProductUnavailable: Bad product reference
            InsufficientStock: Product stock is below the quantity
            ValidationError: Resulting schedule cannot absorb the change
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            before = _header(invoice)

            if data.product_id is not None:
                product = tx.get_product(data.product_id)
                if product is None:
                    raise ProductNotFound(data.product_id)
                if not product.is_available:
                    raise ProductUnavailable(product.id, product.name)
                if product.stock_quantity < data.quantity:
                    raise InsufficientStock(
                        product_id=product.id,
                        product_name=product.name,
                        requested=data.quantity,
                        available=product.stock_quantity,
                    )

            item = InvoiceItem(
                id=uuid4(),
                invoice_id=invoice.id,
                origin=ManualOrigin(),
                description=data.description,
                quantity=data.quantity,
                unit_price_cents=data.unit_price_cents,
                total_cents=data.quantity * data.unit_price_cents,
                product_id=data.product_id,
                created_at=now,
            )
            stored = tx.insert_items([item])[0]
            items = invoice.items + [stored]
            total_cents = sum(i.total_cents for i in items)
            installments = self._fit_schedule(tx, invoice, total_cents)
            invoice = self._with_state(
                invoice, now, items=items, installments=installments, total_cents=total_cents
            )
            tx.update_invoice(invoice)

            self.audit.log_change(
                tx,
                entity_type="invoice_item",
                entity_id=stored.id,
                action=AuditAction.CREATE,
                changes={"created": stored.model_dump(mode="json", exclude={"created_at"})},
            )
            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes=compute_changes(before, _header(invoice)),
            )
            result = self._result(tx, invoice)

        return self._finish(result, False, [])

    def remove_manual_item(self, invoice_id: UUID, item_id: UUID) -> InvoiceResult:
        """
        Remove a free item and return any stock taken for it.

        Raises:
            InvoiceLocked: Invoice is fully paid
            InvoiceItemNotFound: Item is not part of this invoice
            ItemNotRemovable: Item is synchronized from an attendance
            ValidationError: New total would be below what was already paid
        """
        now = now_utc()
        with self.repository.transaction() as tx:
            invoice = self._lock(tx, invoice_id)
            ensure_mutable(invoice)
            item = next((i for i in invoice.items if i.id == item_id), None)
            if item is None:
                raise InvoiceItemNotFound(item_id)
            if not item.is_manual:
                raise ItemNotRemovable(item_id)

            before = _header(invoice)
            self.stock_guard.restore_item(tx, invoice.id, item)
            tx.delete_items([item_id])
            items = [i for i in invoice.items if i.id != item_id]
            total_cents = sum(i.total_cents for i in items)
            installments = self._fit_schedule(tx, invoice, total_cents)
            invoice = self._with_state(
                invoice, now, items=items, installments=installments, total_cents=total_cents
            )
            tx.update_invoice(invoice)

            self.audit.log_change(
                tx,
                entity_type="invoice_item",
                entity_id=item_id,
                action=AuditAction.DELETE,
                changes={"deleted": item.model_dump(mode="json", exclude={"created_at"})},
            )
            self.audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes=compute_changes(before, _header(invoice)),
            )
            result = self._result(tx, invoice)

        return self._finish(result, False, [])

    # =========================================================================
    # READS
    # =========================================================================

    def get_by_id(self, invoice_id: UUID) -> InvoiceResult:
        """
        Get invoice by ID with its payment condition details.

        Raises:
            InvoiceNotFound: Invoice does not exist
        """
        with self.repository.transaction() as tx:
            invoice = tx.get_invoice(invoice_id)
            if invoice is None:
                raise InvoiceNotFound(invoice_id)
            return self._result(tx, invoice)

    def list_invoices(self, invoice_filter: InvoiceFilter) -> tuple[list[Invoice], InvoiceSummary]:
        """
        List invoices matching a filter, newest due date first.

        Returns:
            (page of invoices, totals over every matching invoice)
        """
        with self.repository.transaction() as tx:
            return tx.list_invoices(invoice_filter), tx.summarize_invoices(invoice_filter)

    def list_candidates(self, owner_id: UUID | None = None) -> list[Attendance]:
        """Billable attendances that no invoice covers yet, most recent first."""
        with self.repository.transaction() as tx:
            return tx.list_invoice_candidates(owner_id)
