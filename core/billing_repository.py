"""
Billing persistence.

All billing SQL lives here. Services open a transaction with
``BillingRepository.transaction()`` and work through the returned
``BillingTransaction``; everything done through one transaction commits or
rolls back together.

Reads that feed a mutation take row locks (``for_update=True``) so two
reconciliation passes over the same invoice are serialized.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient, PostgresTransaction
from core.models import (
    AppointmentStatus,
    Attendance,
    AttendanceProductLine,
    AttendanceServiceLine,
    Installment,
    InstallmentDraft,
    Invoice,
    InvoiceFilter,
    InvoiceItem,
    InvoiceSummary,
    PaymentCondition,
    Product,
    StockMovementKind,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


_INVOICE_COLUMNS = """
    id, owner_id, responsible_id, status, is_blocked, total_cents, due_date,
    payment_method, payment_condition_id, payment_details_defined, payment_notes,
    paid_at, created_at, updated_at
"""

_PRODUCT_COLUMNS = """
    id, name, stock_quantity, minimum_stock, is_sellable, is_active, sale_price_cents
"""


def _item_from_row(row: dict[str, Any]) -> InvoiceItem:
    if row["origin_kind"] == "sourced":
        origin = {
            "kind": "sourced",
            "attendance_id": row["attendance_id"],
            "source_kind": row["source_kind"],
            "source_line_id": row["source_line_id"],
        }
    else:
        origin = {"kind": "manual"}
    return InvoiceItem(
        id=row["id"],
        invoice_id=row["invoice_id"],
        origin=origin,
        description=row["description"],
        quantity=row["quantity"],
        unit_price_cents=row["unit_price_cents"],
        total_cents=row["total_cents"],
        product_id=row["product_id"],
        created_at=row["created_at"],
    )


def _item_origin_columns(item: InvoiceItem) -> tuple:
    key = item.source_key
    if key is None:
        return ("manual", None, None, None)
    attendance_id, source_kind, source_line_id = key
    return ("sourced", attendance_id, source_kind.value, source_line_id)


class BillingTransaction:
    """Billing reads and writes bound to one open database transaction."""

    def __init__(self, tx: PostgresTransaction):
        self.tx = tx

    # =========================================================================
    # ATTENDANCES & APPOINTMENTS
    # =========================================================================

    def get_attendance(self, attendance_id: UUID, for_update: bool = False) -> Attendance | None:
        row = self.tx.execute_single(
            f"""
            SELECT a.id, a.animal_id, a.owner_id, a.appointment_id, a.status,
                   a.service_type, a.performed_at, a.base_price_cents,
                   a.created_at, a.updated_at, ap.status AS appointment_status
            FROM attendances a
            LEFT JOIN appointments ap ON ap.id = a.appointment_id
            WHERE a.id = %s
            {"FOR UPDATE OF a" if for_update else ""}
            """,
            (attendance_id,),
        )
        if row is None:
            return None

        service_rows = self.tx.execute(
            """
            SELECT id, definition_id, definition_name, quantity, unit_price_cents, total_cents
            FROM attendance_service_lines
            WHERE attendance_id = %s
            ORDER BY position, id
            """,
            (attendance_id,),
        )
        product_rows = self.tx.execute(
            """
            SELECT id, product_id, product_name, quantity, unit_price_cents, total_cents
            FROM attendance_product_lines
            WHERE attendance_id = %s
            ORDER BY position, id
            """,
            (attendance_id,),
        )
        return Attendance(
            **row,
            service_lines=[AttendanceServiceLine.model_validate(r) for r in service_rows],
            product_lines=[AttendanceProductLine.model_validate(r) for r in product_rows],
        )

    def get_attendance_by_appointment(
        self, appointment_id: UUID, for_update: bool = False
    ) -> Attendance | None:
        attendance_id = self.tx.execute_scalar(
            "SELECT id FROM attendances WHERE appointment_id = %s",
            (appointment_id,),
        )
        if attendance_id is None:
            return None
        return self.get_attendance(UUID(str(attendance_id)), for_update=for_update)

    def list_invoice_candidates(self, owner_id: UUID | None = None) -> list[Attendance]:
        """Billable attendances not linked to any invoice, most recent first."""
        owner_clause = "AND a.owner_id = %s" if owner_id is not None else ""
        params = (owner_id,) if owner_id is not None else None
        rows = self.tx.execute(
            f"""
            SELECT a.id
            FROM attendances a
            LEFT JOIN appointments ap ON ap.id = a.appointment_id
            WHERE a.owner_id IS NOT NULL
              AND a.status <> 'CANCELLED'
              AND (a.appointment_id IS NULL OR ap.status = 'CONCLUDED')
              AND NOT EXISTS (
                  SELECT 1 FROM invoice_attendances ia WHERE ia.attendance_id = a.id
              )
              {owner_clause}
            ORDER BY a.performed_at DESC, a.created_at DESC, a.id
            """,
            params,
        )
        return [self.get_attendance(UUID(str(r["id"]))) for r in rows]

    def get_appointment_status(self, appointment_id: UUID) -> AppointmentStatus | None:
        status = self.tx.execute_scalar(
            "SELECT status FROM appointments WHERE id = %s",
            (appointment_id,),
        )
        return AppointmentStatus(status) if status is not None else None

    def conclude_appointment(self, appointment_id: UUID, now: datetime) -> bool:
        """
        Conclude an appointment and its (non-cancelled) attendance.

        Returns False when the appointment does not exist.
        """
        updated = self.tx.execute_rowcount(
            """
            UPDATE appointments
            SET status = 'CONCLUDED', concluded_at = COALESCE(concluded_at, %s), updated_at = %s
            WHERE id = %s
            """,
            (now, now, appointment_id),
        )
        if updated == 0:
            return False
        self.tx.execute_rowcount(
            """
            UPDATE attendances
            SET status = 'CONCLUDED', updated_at = %s
            WHERE appointment_id = %s AND status <> 'CANCELLED'
            """,
            (now, appointment_id),
        )
        return True

    # =========================================================================
    # INVOICES
    # =========================================================================

    def find_invoice_id_for_attendance(self, attendance_id: UUID) -> UUID | None:
        invoice_id = self.tx.execute_scalar(
            "SELECT invoice_id FROM invoice_attendances WHERE attendance_id = %s",
            (attendance_id,),
        )
        return UUID(str(invoice_id)) if invoice_id is not None else None

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        """Load an invoice with its items, installments and attendance links."""
        row = self.tx.execute_single(
            f"""
            SELECT {_INVOICE_COLUMNS} FROM invoices
            WHERE id = %s
            {"FOR UPDATE" if for_update else ""}
            """,
            (invoice_id,),
        )
        if row is None:
            return None
        return self._hydrate([row])[0]

    def lock_invoice(self, invoice_id: UUID) -> Invoice | None:
        return self.get_invoice(invoice_id, for_update=True)

    def _filter_clause(self, invoice_filter: InvoiceFilter) -> tuple[str, list[Any]]:
        clauses = []
        params: list[Any] = []
        if invoice_filter.owner_id is not None:
            clauses.append("owner_id = %s")
            params.append(invoice_filter.owner_id)
        if invoice_filter.status is not None:
            clauses.append("status = %s")
            params.append(invoice_filter.status.value)
        if invoice_filter.due_from is not None:
            clauses.append("due_date >= %s")
            params.append(invoice_filter.due_from)
        if invoice_filter.due_to is not None:
            clauses.append("due_date <= %s")
            params.append(invoice_filter.due_to)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def list_invoices(self, invoice_filter: InvoiceFilter) -> list[Invoice]:
        where, params = self._filter_clause(invoice_filter)
        rows = self.tx.execute(
            f"""
            SELECT {_INVOICE_COLUMNS} FROM invoices
            {where}
            ORDER BY due_date DESC, created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [invoice_filter.limit, invoice_filter.offset]),
        )
        return self._hydrate(rows)

    def summarize_invoices(self, invoice_filter: InvoiceFilter) -> InvoiceSummary:
        where, params = self._filter_clause(invoice_filter)
        row = self.tx.execute_single(
            f"""
            SELECT COUNT(*) AS count,
                   COALESCE(SUM(total_cents), 0) AS total_cents,
                   COALESCE(SUM(
                       (SELECT COALESCE(SUM(amount_cents), 0) FROM invoice_installments ii
                        WHERE ii.invoice_id = invoices.id AND ii.paid_at IS NOT NULL)
                   ), 0) AS paid_cents
            FROM invoices
            {where}
            """,
            tuple(params),
        )
        total = int(row["total_cents"])
        paid = int(row["paid_cents"])
        return InvoiceSummary(
            count=row["count"], total_cents=total, paid_cents=paid, open_cents=total - paid
        )

    def _hydrate(self, rows: list[dict[str, Any]]) -> list[Invoice]:
        if not rows:
            return []
        ids = [r["id"] for r in rows]

        items: dict[str, list[InvoiceItem]] = {}
        for r in self.tx.execute(
            """
            SELECT id, invoice_id, origin_kind, attendance_id, source_kind, source_line_id,
                   description, quantity, unit_price_cents, total_cents, product_id, created_at
            FROM invoice_items
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY position, created_at, id
            """,
            (ids,),
        ):
            items.setdefault(str(r["invoice_id"]), []).append(_item_from_row(r))

        installments: dict[str, list[Installment]] = {}
        for r in self.tx.execute(
            """
            SELECT id, invoice_id, sequence, due_date, amount_cents, paid_at
            FROM invoice_installments
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY sequence
            """,
            (ids,),
        ):
            installments.setdefault(str(r["invoice_id"]), []).append(Installment.model_validate(r))

        links: dict[str, list[UUID]] = {}
        for r in self.tx.execute(
            """
            SELECT invoice_id, attendance_id FROM invoice_attendances
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY linked_at, attendance_id
            """,
            (ids,),
        ):
            links.setdefault(str(r["invoice_id"]), []).append(r["attendance_id"])

        return [
            Invoice(
                **row,
                items=items.get(str(row["id"]), []),
                installments=installments.get(str(row["id"]), []),
                attendance_ids=links.get(str(row["id"]), []),
            )
            for row in rows
        ]

    def insert_invoice(self, invoice: Invoice) -> None:
        self.tx.execute(
            """
            INSERT INTO invoices (
                id, owner_id, responsible_id, status, is_blocked, total_cents, due_date,
                payment_method, payment_condition_id, payment_details_defined, payment_notes,
                paid_at, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                invoice.id, invoice.owner_id, invoice.responsible_id, invoice.status.value,
                invoice.is_blocked, invoice.total_cents, invoice.due_date,
                invoice.payment_method.value, invoice.payment_condition_id,
                invoice.payment_details_defined, invoice.payment_notes,
                invoice.paid_at, invoice.created_at, invoice.updated_at,
            ),
        )

    def update_invoice(self, invoice: Invoice) -> None:
        """Persist the invoice header (items and installments are written separately)."""
        self.tx.execute(
            """
            UPDATE invoices SET
                responsible_id = %s, status = %s, is_blocked = %s, total_cents = %s,
                due_date = %s, payment_method = %s, payment_condition_id = %s,
                payment_details_defined = %s, payment_notes = %s, paid_at = %s,
                updated_at = %s
            WHERE id = %s
            """,
            (
                invoice.responsible_id, invoice.status.value, invoice.is_blocked,
                invoice.total_cents, invoice.due_date, invoice.payment_method.value,
                invoice.payment_condition_id, invoice.payment_details_defined,
                invoice.payment_notes, invoice.paid_at, invoice.updated_at, invoice.id,
            ),
        )

    def link_attendance(self, invoice_id: UUID, attendance_id: UUID) -> None:
        self.tx.execute(
            """
            INSERT INTO invoice_attendances (invoice_id, attendance_id, linked_at)
            VALUES (%s, %s, %s)
            """,
            (invoice_id, attendance_id, now_utc()),
        )

    # =========================================================================
    # ITEMS
    # =========================================================================

    def insert_items(self, items: list[InvoiceItem]) -> list[InvoiceItem]:
        """Insert items after the invoice's existing ones; returns them with created_at."""
        stored = []
        for item in items:
            origin_kind, attendance_id, source_kind, source_line_id = _item_origin_columns(item)
            row = self.tx.execute_single(
                """
                INSERT INTO invoice_items (
                    id, invoice_id, origin_kind, attendance_id, source_kind, source_line_id,
                    description, quantity, unit_price_cents, total_cents, product_id,
                    position, created_at
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                    (SELECT COALESCE(MAX(position), 0) + 1 FROM invoice_items WHERE invoice_id = %s),
                    %s
                )
                RETURNING id, invoice_id, origin_kind, attendance_id, source_kind, source_line_id,
                          description, quantity, unit_price_cents, total_cents, product_id, created_at
                """,
                (
                    item.id, item.invoice_id, origin_kind, attendance_id, source_kind,
                    source_line_id, item.description, item.quantity, item.unit_price_cents,
                    item.total_cents, item.product_id, item.invoice_id,
                    item.created_at or now_utc(),
                ),
            )
            stored.append(_item_from_row(row))
        return stored

    def update_items(self, items: list[InvoiceItem]) -> None:
        for item in items:
            self.tx.execute(
                """
                UPDATE invoice_items
                SET description = %s, quantity = %s, unit_price_cents = %s,
                    total_cents = %s, product_id = %s
                WHERE id = %s
                """,
                (
                    item.description, item.quantity, item.unit_price_cents,
                    item.total_cents, item.product_id, item.id,
                ),
            )

    def delete_items(self, item_ids: list[UUID]) -> None:
        if not item_ids:
            return
        self.tx.execute(
            "DELETE FROM invoice_items WHERE id = ANY(%s::uuid[])",
            (list(item_ids),),
        )

    # =========================================================================
    # INSTALLMENTS
    # =========================================================================

    def replace_installments(
        self, invoice_id: UUID, drafts: list[InstallmentDraft]
    ) -> list[Installment]:
        """Replace the whole schedule; sequences are 1-based in plan order."""
        self.tx.execute("DELETE FROM invoice_installments WHERE invoice_id = %s", (invoice_id,))
        stored = []
        for sequence, draft in enumerate(drafts, start=1):
            row = self.tx.execute_single(
                """
                INSERT INTO invoice_installments (id, invoice_id, sequence, due_date, amount_cents, paid_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id, invoice_id, sequence, due_date, amount_cents, paid_at
                """,
                (uuid4(), invoice_id, sequence, draft.due_date, draft.amount_cents, draft.paid_at),
            )
            stored.append(Installment.model_validate(row))
        return stored

    def mark_installment_paid(self, installment_id: UUID, paid_at: datetime) -> None:
        self.tx.execute(
            "UPDATE invoice_installments SET paid_at = %s WHERE id = %s",
            (paid_at, installment_id),
        )

    # =========================================================================
    # PAYMENT CONDITIONS
    # =========================================================================

    def get_payment_condition(self, condition_id: str) -> PaymentCondition | None:
        row = self.tx.execute_single(
            """
            SELECT id, name, installment_count, day_offset, notes
            FROM payment_conditions WHERE id = %s
            """,
            (condition_id,),
        )
        return PaymentCondition.model_validate(row) if row else None

    def find_payment_condition_by_name(self, name: str) -> PaymentCondition | None:
        row = self.tx.execute_single(
            """
            SELECT id, name, installment_count, day_offset, notes
            FROM payment_conditions WHERE lower(name) = lower(%s)
            """,
            (name,),
        )
        return PaymentCondition.model_validate(row) if row else None

    def list_payment_conditions(self) -> list[PaymentCondition]:
        rows = self.tx.execute(
            """
            SELECT id, name, installment_count, day_offset, notes
            FROM payment_conditions
            ORDER BY installment_count, day_offset, name
            """
        )
        return [PaymentCondition.model_validate(r) for r in rows]

    def insert_payment_condition(self, condition: PaymentCondition) -> None:
        self.tx.execute(
            """
            INSERT INTO payment_conditions (id, name, installment_count, day_offset, notes)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (
                condition.id, condition.name, condition.installment_count,
                condition.day_offset, condition.notes,
            ),
        )

    def update_payment_condition(self, condition: PaymentCondition) -> None:
        self.tx.execute(
            """
            UPDATE payment_conditions
            SET name = %s, installment_count = %s, day_offset = %s, notes = %s
            WHERE id = %s
            """,
            (
                condition.name, condition.installment_count, condition.day_offset,
                condition.notes, condition.id,
            ),
        )

    def delete_payment_condition(self, condition_id: str) -> None:
        self.tx.execute("DELETE FROM payment_conditions WHERE id = %s", (condition_id,))

    def count_invoices_using_condition(self, condition_id: str) -> int:
        return self.tx.execute_scalar(
            "SELECT COUNT(*) FROM invoices WHERE payment_condition_id = %s",
            (condition_id,),
        ) or 0

    # =========================================================================
    # PRODUCTS & STOCK
    # =========================================================================

    def get_product(self, product_id: UUID, for_update: bool = False) -> Product | None:
        row = self.tx.execute_single(
            f"""
            SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = %s
            {"FOR UPDATE" if for_update else ""}
            """,
            (product_id,),
        )
        return Product.model_validate(row) if row else None

    def get_products(self, product_ids: list[UUID]) -> dict[UUID, Product]:
        if not product_ids:
            return {}
        rows = self.tx.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ANY(%s::uuid[])",
            (list(product_ids),),
        )
        products = [Product.model_validate(r) for r in rows]
        return {p.id: p for p in products}

    def adjusted_item_ids(self, invoice_id: UUID) -> set[UUID]:
        """Items of an invoice whose SALE movement has been recorded."""
        rows = self.tx.execute(
            """
            SELECT invoice_item_id FROM stock_movements
            WHERE invoice_id = %s AND kind = 'SALE'
            """,
            (invoice_id,),
        )
        return {UUID(str(r["invoice_item_id"])) for r in rows}

    def get_movement_quantity(self, item_id: UUID, kind: StockMovementKind) -> int | None:
        """Quantity recorded by the item's movement of this kind, or None."""
        return self.tx.execute_scalar(
            "SELECT quantity FROM stock_movements WHERE invoice_item_id = %s AND kind = %s",
            (item_id, kind.value),
        )

    def insert_stock_movement(
        self,
        item_id: UUID,
        invoice_id: UUID,
        product_id: UUID,
        kind: StockMovementKind,
        quantity: int,
    ) -> bool:
        """
        Record a movement. Returns False if one of this kind already exists
        for the item, in which case the caller must not touch the stock.
        """
        inserted = self.tx.execute_rowcount(
            """
            INSERT INTO stock_movements (id, invoice_item_id, invoice_id, product_id, kind, quantity, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (invoice_item_id, kind) DO NOTHING
            """,
            (uuid4(), item_id, invoice_id, product_id, kind.value, quantity, now_utc()),
        )
        return inserted == 1

    def decrement_stock(self, product_id: UUID, quantity: int) -> int | None:
        """Atomically take stock. Returns the new quantity, or None if stock is short."""
        return self.tx.execute_scalar(
            """
            UPDATE products
            SET stock_quantity = stock_quantity - %s, updated_at = %s
            WHERE id = %s AND stock_quantity >= %s
            RETURNING stock_quantity
            """,
            (quantity, now_utc(), product_id, quantity),
        )

    def increment_stock(self, product_id: UUID, quantity: int) -> int | None:
        return self.tx.execute_scalar(
            """
            UPDATE products
            SET stock_quantity = stock_quantity + %s, updated_at = %s
            WHERE id = %s
            RETURNING stock_quantity
            """,
            (quantity, now_utc(), product_id),
        )

    # =========================================================================
    # AUDIT
    # =========================================================================

    def insert_audit_entry(
        self,
        entity_type: str,
        entity_id: UUID | str,
        action: str,
        changes: dict[str, Any],
        user_id: UUID | None,
    ) -> None:
        self.tx.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (uuid4(), user_id, entity_type, str(entity_id), action, Json(changes), now_utc()),
        )

    def list_audit_entries(self, entity_type: str, entity_id: UUID | str) -> list[dict[str, Any]]:
        return self.tx.execute(
            """
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, str(entity_id)),
        )


class BillingRepository:
    """
    Entry point to billing persistence.

    Usage:
        repository = BillingRepository(postgres)
        with repository.transaction() as tx:
            invoice = tx.lock_invoice(invoice_id)
            ...
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    @contextmanager
    def transaction(self) -> Iterator[BillingTransaction]:
        with self.postgres.transaction() as tx:
            yield BillingTransaction(tx)
