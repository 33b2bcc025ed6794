"""Billing engine configuration."""

from pydantic import BaseModel, Field

from core.models.invoice import PaymentMethod


class BillingConfig(BaseModel):
    """
    Billing configuration.

    Amounts are in cents and durations in days, matching the engine's units.
    """

    default_due_days: int = Field(
        default=7,
        description="Days after the attendance date a new invoice falls due",
        ge=0,
        le=365,
    )
    amount_tolerance_cents: int = Field(
        default=1,
        description="Accepted difference between an installment plan and the invoice total",
        ge=0,
        le=100,
    )
    max_installments: int = Field(
        default=48,
        description="Longest installment plan accepted from callers",
        ge=1,
        le=120,
    )
    default_payment_method: PaymentMethod = Field(
        default=PaymentMethod.CASH,
        description="Payment method recorded on invoices created from attendances",
    )
    warn_on_low_stock: bool = Field(
        default=True,
        description="Publish ProductStockLow when a sale leaves stock at or below minimum",
    )
