"""
Handler for AppointmentCompleted events.

When an appointment concludes after its attendance was already invoiced, the
invoice is resynchronized so it picks up the attendance's final lines.
"""

import logging
from typing import Callable

from core.events import AppointmentCompleted

logger = logging.getLogger(__name__)


def handle_appointment_completed(invoice_service) -> Callable:
    """
    Factory that returns an AppointmentCompleted handler.

    Args:
        invoice_service: InvoiceService instance

    Returns:
        Handler callable that resynchronizes the attendance's invoice
    """

    def handler(event: AppointmentCompleted):
        if event.attendance_id is None:
            return

        if invoice_service.invoice_id_for_attendance(event.attendance_id) is None:
            return

        # Returns a paid invoice unchanged, resynchronizes an open one
        invoice_service.create_for_attendance(event.attendance_id)

    return handler
