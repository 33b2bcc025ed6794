"""
Invoice line synchronization.

Recomputes the attendance-sourced items of an invoice from its linked
attendances. Manual items are never touched. Items are matched by their
synchronization key (attendance id, source kind, source line id), so a second
pass over unchanged attendances produces no changes.
"""

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from core.billing.state_machine import ensure_mutable
from core.exceptions import AttendanceNotBillable, InvalidAttendanceState
from core.models.attendance import Attendance
from core.models.invoice import Invoice
from core.models.invoice_item import InvoiceItem, ItemSourceKind, SourcedOrigin


@dataclass(frozen=True)
class SourceLine:
    """What one attendance line should look like as an invoice item."""

    origin: SourcedOrigin
    description: str
    quantity: int
    unit_price_cents: int
    total_cents: int
    product_id: UUID | None = None


@dataclass
class SyncResult:
    """Outcome of one synchronization pass."""

    items: list[InvoiceItem]
    total_cents: int
    created: list[InvoiceItem] = field(default_factory=list)
    updated: list[InvoiceItem] = field(default_factory=list)
    deleted: list[InvoiceItem] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.created or self.updated or self.deleted)


def ensure_attendance_billable(attendance: Attendance) -> None:
    """
    Check an attendance may be invoiced.

    Raises:
        AttendanceNotBillable: Cancelled, or its appointment is not concluded
        InvalidAttendanceState: No owner to bill
    """
    if attendance.is_cancelled:
        raise AttendanceNotBillable(
            attendance.id, "Atendimentos cancelados não podem ser faturados."
        )
    if not attendance.is_billable:
        raise AttendanceNotBillable(attendance.id)
    ensure_has_owner(attendance)


def ensure_has_owner(attendance: Attendance) -> UUID:
    if attendance.owner_id is None:
        raise InvalidAttendanceState(
            attendance.id,
            f"O atendimento {attendance.id} não possui tutor vinculado para faturamento.",
        )
    return attendance.owner_id


def source_lines(attendance: Attendance) -> list[SourceLine]:
    """
    Billable lines of an attendance, in display order.

    Catalog services first, then products. An attendance with no catalog
    services bills its base price as a single line.
    """
    lines: list[SourceLine] = []
    if attendance.service_lines:
        for line in attendance.service_lines:
            lines.append(
                SourceLine(
                    origin=SourcedOrigin(
                        attendance_id=attendance.id,
                        source_kind=ItemSourceKind.SERVICE,
                        source_line_id=line.id,
                    ),
                    description=f"Serviço: {line.definition_name}",
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    total_cents=line.total_cents,
                )
            )
    else:
        lines.append(
            SourceLine(
                origin=SourcedOrigin(
                    attendance_id=attendance.id,
                    source_kind=ItemSourceKind.BASE,
                    source_line_id=attendance.id,
                ),
                description=f"Serviço: {attendance.service_type}",
                quantity=1,
                unit_price_cents=attendance.base_price_cents,
                total_cents=attendance.base_price_cents,
            )
        )

    for line in attendance.product_lines:
        lines.append(
            SourceLine(
                origin=SourcedOrigin(
                    attendance_id=attendance.id,
                    source_kind=ItemSourceKind.PRODUCT,
                    source_line_id=line.id,
                ),
                description=f"Produto: {line.product_name}",
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_cents=line.total_cents,
                product_id=line.product_id,
            )
        )
    return lines


def compute_total(items: list[InvoiceItem]) -> int:
    return sum(item.total_cents for item in items)


def _differs(item: InvoiceItem, line: SourceLine) -> bool:
    return (
        item.description != line.description
        or item.quantity != line.quantity
        or item.unit_price_cents != line.unit_price_cents
        or item.total_cents != line.total_cents
        or item.product_id != line.product_id
    )


def _moves_stock(item: InvoiceItem, line: SourceLine) -> bool:
    """Product or quantity of a product item changed."""
    if item.product_id is None and line.product_id is None:
        return False
    return item.product_id != line.product_id or item.quantity != line.quantity


def _new_item(invoice: Invoice, line: SourceLine) -> InvoiceItem:
    return InvoiceItem(
        id=uuid4(),
        invoice_id=invoice.id,
        origin=line.origin,
        description=line.description,
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        total_cents=line.total_cents,
        product_id=line.product_id,
    )


def synchronize(invoice: Invoice, attendances: list[Attendance]) -> SyncResult:
    """
    Reconcile an invoice's sourced items with its attendances.

    Items of attendances no longer in ``attendances`` are removed. Cancelled
    attendances contribute no lines. A product item whose product or quantity
    changed is replaced by a new item (new id) rather than updated, so the
    stock taken for the old one is returned and the new one is taken afresh.

    Raises:
        InvoiceLocked: Invoice is fully paid
        InvalidAttendanceState: An attendance has no owner or belongs to
            another owner than the invoice
    """
    ensure_mutable(invoice)

    desired: dict[tuple, SourceLine] = {}
    for attendance in attendances:
        owner_id = ensure_has_owner(attendance)
        if owner_id != invoice.owner_id:
            raise InvalidAttendanceState(
                attendance.id,
                f"O atendimento {attendance.id} pertence a outro tutor e não pode "
                f"ser incluído na conta {invoice.id}.",
            )
        if attendance.is_cancelled:
            continue
        for line in source_lines(attendance):
            desired[line.origin.key] = line

    result = SyncResult(items=[], total_cents=0)
    seen: set[tuple] = set()
    for item in invoice.items:
        key = item.source_key
        if key is None:
            result.items.append(item)
            continue
        line = desired.get(key)
        if line is None or key in seen:
            result.deleted.append(item)
            continue
        seen.add(key)
        if _moves_stock(item, line):
            # Old item leaves (its stock comes back); the new one is sold anew
            result.deleted.append(item)
            item = _new_item(invoice, line)
            result.created.append(item)
        elif _differs(item, line):
            item = item.model_copy(
                update={
                    "description": line.description,
                    "quantity": line.quantity,
                    "unit_price_cents": line.unit_price_cents,
                    "total_cents": line.total_cents,
                    "product_id": line.product_id,
                }
            )
            result.updated.append(item)
        result.items.append(item)

    for key, line in desired.items():
        if key in seen:
            continue
        item = _new_item(invoice, line)
        result.created.append(item)
        result.items.append(item)

    result.total_cents = compute_total(result.items)
    return result
