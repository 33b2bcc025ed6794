"""Payment condition models.

A payment condition is a named template: how many installments an invoice is
split into and how many days apart they fall due.
"""

from pydantic import BaseModel, Field, field_validator


class PaymentConditionCreate(BaseModel):
    """Data required to create a payment condition."""

    id: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Z0-9_]+$")
    name: str = Field(..., min_length=1, max_length=100)
    installment_count: int = Field(..., ge=1, le=48)
    day_offset: int = Field(0, ge=0, le=365)
    notes: str | None = Field(None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class PaymentConditionUpdate(BaseModel):
    """Data that can be updated on a payment condition. All fields optional."""

    name: str | None = Field(None, min_length=1, max_length=100)
    installment_count: int | None = Field(None, ge=1, le=48)
    day_offset: int | None = Field(None, ge=0, le=365)
    notes: str | None = Field(None, max_length=500)


class PaymentCondition(BaseModel):
    """Full payment condition as stored."""

    id: str
    name: str
    installment_count: int = Field(..., ge=1)
    day_offset: int = Field(0, ge=0)
    notes: str | None = None

    model_config = {"from_attributes": True}
