"""
Audit trail for billing changes.

Every invoice, installment, item and payment condition mutation is logged
here, inside the same transaction as the mutation itself. The audit log is:
- Append-only (entries never modified or deleted)
- Staff-attributed (who made the change; null for system-initiated work)
- Detailed (captures old and new values)
"""

from enum import Enum
from uuid import UUID
from typing import Any

from core.billing_repository import BillingRepository, BillingTransaction
from utils.user_context import current_staff_id_or_none


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PAYMENT = "payment"
    SYNC = "sync"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer and reader.

    IMPORTANT: Always use model_dump(mode="json") when passing Pydantic models
    so UUIDs, dates and enums are serialized to JSON-compatible values.

    Usage:
        audit = AuditLogger(repository)

        with repository.transaction() as tx:
            ...
            audit.log_change(
                tx,
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes=compute_changes(old_header, new_header),
            )

        history = audit.get_entity_history("invoice", invoice.id)
    """

    def __init__(self, repository: BillingRepository):
        self.repository = repository

    def log_change(
        self,
        tx: BillingTransaction,
        entity_type: str,
        entity_id: UUID | str,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> None:
        """
        Log an entity change in the caller's transaction.

        Args:
            tx: Open transaction the mutation is running in
            entity_type: Type of entity ("invoice", "invoice_item", etc.)
            entity_id: ID of the entity
            action: The action performed
            changes: The changes made (format depends on action)
            user_id: Staff member who made the change (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE / PAYMENT: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        - SYNC: {"created": n, "updated": n, "deleted": n, "total_cents": {...}}
        """
        if user_id is None:
            user_id = current_staff_id_or_none()

        tx.insert_audit_entry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            changes=changes,
            user_id=user_id,
        )

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID | str
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        with self.repository.transaction() as tx:
            return tx.list_audit_entries(entity_type, entity_id)
