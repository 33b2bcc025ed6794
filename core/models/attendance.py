"""Attendance (rendered clinical service) domain models.

Attendances are owned by the clinical side of the application. Billing only
reads them; the line models here mirror what the attendance screens persist.
All prices are stored in cents (integer). R$ 10,00 = 1000 cents.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from utils.money import cents_from_decimal_fields


class AttendanceStatus(str, Enum):
    """Attendance lifecycle status."""

    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"
    CONCLUDED = "CONCLUDED"


class AppointmentStatus(str, Enum):
    """Status of the appointment an attendance was opened from."""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CONCLUDED = "CONCLUDED"
    CANCELLED = "CANCELLED"


class AttendanceServiceLine(BaseModel):
    """Catalog service rendered during an attendance."""

    id: UUID
    definition_id: UUID
    definition_name: str
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)
    total_cents: int | None = Field(None, ge=0)

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def convert_decimal_amounts(cls, data):
        return cents_from_decimal_fields(
            data, {"unit_price": "unit_price_cents", "total": "total_cents"}
        )

    @model_validator(mode="after")
    def compute_total_if_missing(self) -> "AttendanceServiceLine":
        """Compute total_cents from quantity * unit_price_cents if not provided."""
        if self.total_cents is None:
            self.total_cents = self.quantity * self.unit_price_cents
        return self


class AttendanceProductLine(BaseModel):
    """Product consumed or sold during an attendance."""

    id: UUID
    product_id: UUID
    product_name: str
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)
    total_cents: int | None = Field(None, ge=0)

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def convert_decimal_amounts(cls, data):
        return cents_from_decimal_fields(
            data, {"unit_price": "unit_price_cents", "total": "total_cents"}
        )

    @model_validator(mode="after")
    def compute_total_if_missing(self) -> "AttendanceProductLine":
        """Compute total_cents from quantity * unit_price_cents if not provided."""
        if self.total_cents is None:
            self.total_cents = self.quantity * self.unit_price_cents
        return self


class Attendance(BaseModel):
    """Full attendance record with its billable lines."""

    id: UUID
    animal_id: UUID
    owner_id: UUID | None = None
    appointment_id: UUID | None = None
    appointment_status: AppointmentStatus | None = None
    status: AttendanceStatus = AttendanceStatus.IN_PROGRESS
    service_type: str
    performed_at: date
    base_price_cents: int = Field(0, ge=0)
    service_lines: list[AttendanceServiceLine] = Field(default_factory=list)
    product_lines: list[AttendanceProductLine] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_cancelled(self) -> bool:
        """Whether the attendance or its appointment was cancelled."""
        return (
            self.status == AttendanceStatus.CANCELLED
            or self.appointment_status == AppointmentStatus.CANCELLED
        )

    @property
    def is_billable(self) -> bool:
        """Whether billing may create an invoice from this attendance."""
        if self.is_cancelled:
            return False
        if self.appointment_id is None:
            return True
        return self.appointment_status == AppointmentStatus.CONCLUDED
