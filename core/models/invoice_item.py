"""Invoice line item models.

An item's origin is a tagged variant: either synchronized from an attendance
line (``sourced``) or entered by hand at the front desk (``manual``). The
provenance of a sourced item never changes after creation.
All prices are stored in cents (integer). R$ 10,00 = 1000 cents.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.money import cents_from_decimal_fields


class ItemSourceKind(str, Enum):
    """Which attendance line a sourced item mirrors."""

    SERVICE = "SERVICE"
    PRODUCT = "PRODUCT"
    BASE = "BASE"


class SourcedOrigin(BaseModel):
    """Item synchronized from an attendance line."""

    kind: Literal["sourced"] = "sourced"
    attendance_id: UUID
    source_kind: ItemSourceKind
    # BASE items have no line of their own; they are keyed by the attendance id
    source_line_id: UUID

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[UUID, ItemSourceKind, UUID]:
        return (self.attendance_id, self.source_kind, self.source_line_id)


class ManualOrigin(BaseModel):
    """Free item added by hand."""

    kind: Literal["manual"] = "manual"

    model_config = {"frozen": True}


ItemOrigin = Annotated[Union[SourcedOrigin, ManualOrigin], Field(discriminator="kind")]


class ManualItemCreate(BaseModel):
    """Data required to add a manual item to an invoice."""

    description: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)
    product_id: UUID | None = None

    @model_validator(mode="before")
    @classmethod
    def convert_decimal_amounts(cls, data):
        return cents_from_decimal_fields(data, {"unit_price": "unit_price_cents"})

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be blank")
        return v


class InvoiceItem(BaseModel):
    """Full invoice item as stored."""

    id: UUID
    invoice_id: UUID
    origin: ItemOrigin
    description: str
    quantity: int = Field(..., ge=1)
    unit_price_cents: int
    total_cents: int
    product_id: UUID | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_manual(self) -> bool:
        return isinstance(self.origin, ManualOrigin)

    @property
    def source_key(self) -> tuple[UUID, ItemSourceKind, UUID] | None:
        """Synchronization key, or None for manual items."""
        if isinstance(self.origin, SourcedOrigin):
            return self.origin.key
        return None
