"""
Appointment completion.

Scheduling and clinical records are owned elsewhere in the application; this
service is the seam billing listens on. Concluding an appointment publishes
AppointmentCompleted so a linked invoice can pick up the final attendance lines.
"""

import logging
from uuid import UUID

from core.billing_repository import BillingRepository
from core.event_bus import EventBus
from core.events import AppointmentCompleted
from core.exceptions import AppointmentNotFound
from core.models import Attendance
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AttendanceService:
    """Service for attendance and appointment operations billing depends on."""

    def __init__(self, repository: BillingRepository, event_bus: EventBus):
        self.repository = repository
        self.event_bus = event_bus

    def complete_appointment(self, appointment_id: UUID) -> Attendance | None:
        """
        Conclude an appointment and its attendance.

        Returns:
            The concluded attendance, or None if the appointment has none yet

        Raises:
            AppointmentNotFound: Appointment does not exist
        """
        with self.repository.transaction() as tx:
            if not tx.conclude_appointment(appointment_id, now_utc()):
                raise AppointmentNotFound(appointment_id)
            attendance = tx.get_attendance_by_appointment(appointment_id)

        self.event_bus.publish(
            AppointmentCompleted.create(
                appointment_id=appointment_id,
                attendance_id=attendance.id if attendance else None,
            )
        )
        return attendance

    def get_by_id(self, attendance_id: UUID) -> Attendance | None:
        with self.repository.transaction() as tx:
            return tx.get_attendance(attendance_id)
