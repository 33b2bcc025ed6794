"""
Stock reconciliation.

Decrements inventory for billed product items at most once per item. The
``stock_movements`` ledger is the persisted "already adjusted" set: a SALE
row is written in the same transaction as the decrement, and its unique
(invoice_item_id, kind) index means two concurrent passes can never both
decrement the same item.

Passes run after the invoice write has committed. Each item is applied in its
own transaction, so a product that is short on stock never blocks the others
or the invoice itself; it is reported as a warning and retried by the next pass.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from core.billing_repository import BillingRepository, BillingTransaction
from core.event_bus import EventBus
from core.events import ProductStockLow
from core.exceptions import InsufficientStock, InvoiceNotFound
from core.models import InvoiceItem, Product, StockMovementKind, StockWarningOut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockWarning:
    """An item whose stock adjustment was skipped."""

    item_id: UUID
    product_id: UUID
    product_name: str
    requested: int
    available: int
    message: str

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.available, 0)

    @classmethod
    def from_error(cls, item_id: UUID, error: InsufficientStock) -> "StockWarning":
        return cls(
            item_id=item_id,
            product_id=error.product_id,
            product_name=error.product_name,
            requested=error.requested,
            available=error.available,
            message=str(error),
        )

    def to_out(self) -> StockWarningOut:
        return StockWarningOut(
            item_id=self.item_id,
            product_id=self.product_id,
            product_name=self.product_name,
            requested=self.requested,
            available=self.available,
            shortfall=self.shortfall,
            message=self.message,
        )


@dataclass
class StockPassResult:
    applied: list[UUID] = field(default_factory=list)
    warnings: list[StockWarning] = field(default_factory=list)


def select_candidates(
    items: list[InvoiceItem],
    adjusted_ids: set[UUID],
    products: dict[UUID, Product],
) -> list[InvoiceItem]:
    """Items not yet adjusted whose product exists, is active and is sellable."""
    candidates = []
    for item in items:
        if item.product_id is None or item.id in adjusted_ids:
            continue
        product = products.get(item.product_id)
        if product is None or not product.is_available:
            continue
        candidates.append(item)
    return candidates


class StockReconciliationGuard:
    """Applies net-new stock decrements for an invoice's items."""

    def __init__(
        self,
        repository: BillingRepository,
        event_bus: EventBus,
        warn_on_low_stock: bool = True,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.warn_on_low_stock = warn_on_low_stock

    def reconcile(self, invoice_id: UUID, settled: bool = False) -> StockPassResult:
        """
        Run one stock pass over an invoice.

        Args:
            invoice_id: Invoice whose items are checked
            settled: The invoice was already fully paid before the operation
                that triggered this pass; every item counts as adjusted.

        Returns:
            Applied item ids and warnings for items skipped for lack of stock.
        """
        result = StockPassResult()
        if settled:
            return result

        with self.repository.transaction() as tx:
            invoice = tx.get_invoice(invoice_id)
            if invoice is None:
                raise InvoiceNotFound(invoice_id)
            adjusted = tx.adjusted_item_ids(invoice_id)
            products = tx.get_products(
                list({i.product_id for i in invoice.items if i.product_id is not None})
            )

        for item in select_candidates(invoice.items, adjusted, products):
            try:
                product = self._apply(invoice_id, item)
            except InsufficientStock as e:
                logger.warning(
                    "Stock adjustment skipped for item %s of invoice %s: %s",
                    item.id, invoice_id, e,
                )
                result.warnings.append(StockWarning.from_error(item.id, e))
                continue

            if product is None:
                continue
            result.applied.append(item.id)
            if self.warn_on_low_stock and product.is_below_minimum:
                self.event_bus.publish(ProductStockLow.create(product))

        return result

    def _apply(self, invoice_id: UUID, item: InvoiceItem) -> Product | None:
        """
        Mark and decrement one item in its own transaction.

        Returns the product after the decrement, or None when another pass
        got there first. Raises InsufficientStock, rolling back the marker.
        """
        with self.repository.transaction() as tx:
            product = tx.get_product(item.product_id)
            if product is None or not product.is_available:
                return None
            if not tx.insert_stock_movement(
                item.id, invoice_id, product.id, StockMovementKind.SALE, item.quantity
            ):
                return None
            remaining = tx.decrement_stock(product.id, item.quantity)
            if remaining is None:
                current = tx.get_product(product.id)
                raise InsufficientStock(
                    product_id=product.id,
                    product_name=product.name,
                    requested=item.quantity,
                    available=current.stock_quantity if current else 0,
                )
            return product.model_copy(update={"stock_quantity": remaining})

    def restore_item(self, tx: BillingTransaction, invoice_id: UUID, item: InvoiceItem) -> bool:
        """
        Put back the stock taken for an item that is leaving the invoice.

        Runs in the caller's transaction. Only items with a recorded SALE are
        restored, and only once. Returns True if stock was incremented.
        """
        if item.product_id is None:
            return False
        sold = tx.get_movement_quantity(item.id, StockMovementKind.SALE)
        if sold is None:
            return False
        if not tx.insert_stock_movement(
            item.id, invoice_id, item.product_id, StockMovementKind.RETURN, sold
        ):
            return False
        tx.increment_stock(item.product_id, sold)
        return True
