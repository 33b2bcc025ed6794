"""Installment models.

Installments are the authoritative payment state of an invoice. The sum of an
invoice's installment amounts always equals its total, in cents.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.money import cents_from_decimal_fields
from utils.timezone import as_utc


class InstallmentDraft(BaseModel):
    """One installment of a caller-supplied or computed plan (not yet stored)."""

    due_date: date
    amount_cents: int = Field(..., ge=0)
    paid_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def convert_decimal_amounts(cls, data):
        return cents_from_decimal_fields(data, {"amount": "amount_cents"})

    @field_validator("paid_at")
    @classmethod
    def normalize_paid_at(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


class Installment(BaseModel):
    """Full installment as stored."""

    id: UUID
    invoice_id: UUID
    sequence: int
    due_date: date
    amount_cents: int
    paid_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    def to_draft(self) -> InstallmentDraft:
        return InstallmentDraft(
            due_date=self.due_date, amount_cents=self.amount_cents, paid_at=self.paid_at
        )
