"""Tests for appointment completion handler.

On AppointmentCompleted: resynchronize the invoice of the attendance, if it
has one.
"""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from core.events import AppointmentCompleted
from core.handlers.appointment_completion_handler import handle_appointment_completed
from core.services.invoice_service import InvoiceService


@pytest.fixture
def mock_invoice_service():
    return Mock(spec=InvoiceService)


class TestAppointmentCompletionHandler:

    def test_resynchronizes_invoiced_attendance(self, mock_invoice_service):
        attendance_id = uuid4()
        mock_invoice_service.invoice_id_for_attendance.return_value = uuid4()
        handler = handle_appointment_completed(mock_invoice_service)

        handler(AppointmentCompleted.create(uuid4(), attendance_id))

        mock_invoice_service.create_for_attendance.assert_called_once_with(attendance_id)

    def test_attendance_without_invoice_is_left_alone(self, mock_invoice_service):
        mock_invoice_service.invoice_id_for_attendance.return_value = None
        handler = handle_appointment_completed(mock_invoice_service)

        handler(AppointmentCompleted.create(uuid4(), uuid4()))

        mock_invoice_service.create_for_attendance.assert_not_called()

    def test_appointment_without_attendance_is_noop(self, mock_invoice_service):
        handler = handle_appointment_completed(mock_invoice_service)

        handler(AppointmentCompleted.create(uuid4(), None))

        mock_invoice_service.invoice_id_for_attendance.assert_not_called()


class TestWiredThroughEventBus:
    """Handler as subscribed by build_services."""

    def test_completion_pulls_final_lines_into_invoice(
        self, store, invoice_service, attendance_service, make_attendance, product_line_for
    ):
        attendance = make_attendance(services=[("Consulta", 1, 5000)])
        invoice = invoice_service.create_for_attendance(attendance.id).invoice
        store.edit_attendance(attendance.id, product_lines=[product_line_for(1, 1500)])

        attendance_service.complete_appointment(attendance.appointment_id)

        assert invoice_service.get_by_id(invoice.id).invoice.total_cents == 6500

    def test_completion_leaves_paid_invoice_untouched(
        self, store, invoice_service, attendance_service, make_attendance, product_line_for
    ):
        from core.models import InvoicePayment

        attendance = make_attendance(services=[("Consulta", 1, 5000)])
        invoice = invoice_service.create_for_attendance(attendance.id).invoice
        paid = invoice_service.mark_as_paid(invoice.id, InvoicePayment(
            installments=[{"due_date": invoice.due_date, "amount_cents": 5000}],
        )).invoice
        store.edit_attendance(attendance.id, product_lines=[product_line_for(1, 1500)])

        attendance_service.complete_appointment(attendance.appointment_id)

        assert invoice_service.get_by_id(invoice.id).invoice == paid
