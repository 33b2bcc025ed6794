"""
Payment condition service.

Conditions are shared templates referenced by invoices. A condition that any
invoice references cannot be deleted: existing schedules were built from it.
"""

import logging

from core.audit import AuditLogger, AuditAction, compute_changes
from core.billing_repository import BillingRepository
from core.exceptions import (
    PaymentConditionInUse,
    PaymentConditionNotFound,
    StateConflictError,
)
from core.models import PaymentCondition, PaymentConditionCreate, PaymentConditionUpdate

logger = logging.getLogger(__name__)


class PaymentConditionService:
    """Service for payment condition operations."""

    def __init__(self, repository: BillingRepository, audit: AuditLogger):
        self.repository = repository
        self.audit = audit

    def list_all(self) -> list[PaymentCondition]:
        """All conditions, shortest plans first."""
        with self.repository.transaction() as tx:
            return tx.list_payment_conditions()

    def get_by_id(self, condition_id: str) -> PaymentCondition:
        """
        Raises:
            PaymentConditionNotFound: Unknown condition id
        """
        with self.repository.transaction() as tx:
            condition = tx.get_payment_condition(condition_id)
        if condition is None:
            raise PaymentConditionNotFound(condition_id)
        return condition

    def create(self, data: PaymentConditionCreate) -> PaymentCondition:
        """
        Create a condition.

        Raises:
            StateConflictError: Id or name already in use
        """
        condition = PaymentCondition(**data.model_dump())
        with self.repository.transaction() as tx:
            if tx.get_payment_condition(condition.id) is not None:
                raise StateConflictError(
                    f"Já existe uma condição de pagamento com o código {condition.id}."
                )
            if tx.find_payment_condition_by_name(condition.name) is not None:
                raise StateConflictError(
                    f"Já existe uma condição de pagamento chamada {condition.name}."
                )
            tx.insert_payment_condition(condition)
            self.audit.log_change(
                tx,
                entity_type="payment_condition",
                entity_id=condition.id,
                action=AuditAction.CREATE,
                changes={"created": condition.model_dump(mode="json")},
            )
        return condition

    def update(self, condition_id: str, data: PaymentConditionUpdate) -> PaymentCondition:
        """
        Update a condition. Invoices keep the schedules already built from it.

        Raises:
            PaymentConditionNotFound: Unknown condition id
            StateConflictError: New name already in use
        """
        with self.repository.transaction() as tx:
            current = tx.get_payment_condition(condition_id)
            if current is None:
                raise PaymentConditionNotFound(condition_id)

            updates = data.model_dump(exclude_unset=True)
            if not updates:
                return current

            updated = current.model_copy(update=updates)
            if updated.name != current.name:
                clash = tx.find_payment_condition_by_name(updated.name)
                if clash is not None and clash.id != condition_id:
                    raise StateConflictError(
                        f"Já existe uma condição de pagamento chamada {updated.name}."
                    )

            tx.update_payment_condition(updated)
            self.audit.log_change(
                tx,
                entity_type="payment_condition",
                entity_id=condition_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(current.model_dump(mode="json"), updated.model_dump(mode="json")),
            )
        return updated

    def delete(self, condition_id: str) -> None:
        """
        Delete a condition no invoice references.

        Raises:
            PaymentConditionNotFound: Unknown condition id
            PaymentConditionInUse: At least one invoice references it
        """
        with self.repository.transaction() as tx:
            current = tx.get_payment_condition(condition_id)
            if current is None:
                raise PaymentConditionNotFound(condition_id)
            in_use = tx.count_invoices_using_condition(condition_id)
            if in_use > 0:
                raise PaymentConditionInUse(condition_id, in_use)
            tx.delete_payment_condition(condition_id)
            self.audit.log_change(
                tx,
                entity_type="payment_condition",
                entity_id=condition_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")},
            )
