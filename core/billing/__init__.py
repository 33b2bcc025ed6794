"""Billing reconciliation engine: scheduling, synchronization, stock and payment state."""

from core.billing.scheduler import build_schedule, split_amount, rebalance_schedule, normalize_plan
from core.billing.state_machine import (
    InvoiceState, derive_state, derive_status, derive_paid_at, paid_amount,
    ensure_mutable, ensure_no_payment_regression, prepare_full_payment,
)
from core.billing.synchronizer import (
    SourceLine, SyncResult, ensure_attendance_billable, source_lines, compute_total, synchronize,
)
from core.billing.stock_guard import (
    StockWarning, StockPassResult, StockReconciliationGuard, select_candidates,
)

__all__ = [
    # Scheduler
    "build_schedule", "split_amount", "rebalance_schedule", "normalize_plan",
    # State machine
    "InvoiceState", "derive_state", "derive_status", "derive_paid_at", "paid_amount",
    "ensure_mutable", "ensure_no_payment_regression", "prepare_full_payment",
    # Synchronizer
    "SourceLine", "SyncResult", "ensure_attendance_billable", "source_lines", "compute_total", "synchronize",
    # Stock guard
    "StockWarning", "StockPassResult", "StockReconciliationGuard", "select_candidates",
]
