"""Appointment completion endpoint (the seam billing listens on)."""

from uuid import UUID

from fastapi import APIRouter, Request

from api.base import success_response, request_id_of


def create_appointment_router(services: dict) -> APIRouter:
    router = APIRouter()

    attendance_svc = services["attendance"]

    @router.patch("/appointments/{appointment_id}/complete")
    async def complete_appointment(request: Request, appointment_id: UUID):
        attendance = attendance_svc.complete_appointment(appointment_id)
        data = {
            "appointment_id": str(appointment_id),
            "status": "CONCLUDED",
            "attendance": attendance.model_dump(mode="json") if attendance else None,
        }
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    return router
