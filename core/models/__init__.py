"""Core domain models."""

from core.models.attendance import (
    Attendance, AttendanceServiceLine, AttendanceProductLine, AttendanceStatus, AppointmentStatus,
)
from core.models.product import Product, StockMovementKind
from core.models.payment_condition import PaymentCondition, PaymentConditionCreate, PaymentConditionUpdate
from core.models.installment import Installment, InstallmentDraft
from core.models.invoice_item import (
    InvoiceItem, ManualItemCreate, ItemOrigin, ItemSourceKind, SourcedOrigin, ManualOrigin,
)
from core.models.invoice import (
    Invoice, InvoiceStatus, PaymentMethod, InvoiceCreateRequest, InvoiceAdjust, InvoicePayment,
    InstallmentPay, AttendanceAttach, InvoiceBlock, InvoiceFilter, InvoiceSummary,
    StockWarningOut, InvoiceResult,
)

__all__ = [
    # Attendance
    "Attendance", "AttendanceServiceLine", "AttendanceProductLine", "AttendanceStatus", "AppointmentStatus",
    # Product
    "Product", "StockMovementKind",
    # PaymentCondition
    "PaymentCondition", "PaymentConditionCreate", "PaymentConditionUpdate",
    # Installment
    "Installment", "InstallmentDraft",
    # InvoiceItem
    "InvoiceItem", "ManualItemCreate", "ItemOrigin", "ItemSourceKind", "SourcedOrigin", "ManualOrigin",
    # Invoice
    "Invoice", "InvoiceStatus", "PaymentMethod", "InvoiceCreateRequest", "InvoiceAdjust", "InvoicePayment",
    "InstallmentPay", "AttendanceAttach", "InvoiceBlock", "InvoiceFilter", "InvoiceSummary",
    "StockWarningOut", "InvoiceResult",
]
