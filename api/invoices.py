"""Invoice endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response, request_id_of
from core.models import (
    AttendanceAttach,
    InstallmentPay,
    InvoiceAdjust,
    InvoiceBlock,
    InvoiceCreateRequest,
    InvoiceFilter,
    InvoicePayment,
    InvoiceResult,
    InvoiceStatus,
    ManualItemCreate,
)


def invoice_payload(result: InvoiceResult) -> dict:
    """Invoice as returned to clients, with condition details and stock warnings."""
    data = result.invoice.model_dump(mode="json")
    data["payment_condition_details"] = (
        result.payment_condition_details.model_dump(mode="json")
        if result.payment_condition_details
        else None
    )
    data["stock_warnings"] = [w.model_dump(mode="json") for w in result.stock_warnings]
    return data


def create_invoice_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]

    def respond(request: Request, result: InvoiceResult) -> dict:
        return success_response(invoice_payload(result), request_id_of(request)).model_dump(mode="json")

    @router.get("/invoice-statuses")
    async def list_statuses(request: Request):
        data = [{"value": s.value, "label": s.label} for s in InvoiceStatus]
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    @router.post("/invoices", status_code=201)
    async def create_invoice(request: Request, body: InvoiceCreateRequest):
        if body.appointment_id is not None:
            result = invoice_svc.create_for_appointment(body.appointment_id, due_date=body.due_date)
        else:
            result = invoice_svc.create_for_attendance(body.attendance_id, due_date=body.due_date)
        return respond(request, result)

    @router.get("/invoices")
    async def list_invoices(
        request: Request,
        owner_id: UUID | None = Query(None),
        status: InvoiceStatus | None = Query(None),
        due_from: date | None = Query(None),
        due_to: date | None = Query(None),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        invoices, summary = invoice_svc.list_invoices(
            InvoiceFilter(
                owner_id=owner_id,
                status=status,
                due_from=due_from,
                due_to=due_to,
                limit=limit,
                offset=offset,
            )
        )
        data = {
            "invoices": [i.model_dump(mode="json") for i in invoices],
            "summary": summary.model_dump(mode="json"),
        }
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    @router.get("/invoices/candidates")
    async def list_candidates(request: Request, owner_id: UUID | None = Query(None)):
        attendances = invoice_svc.list_candidates(owner_id)
        data = [a.model_dump(mode="json") for a in attendances]
        return success_response(data, request_id_of(request)).model_dump(mode="json")

    @router.get("/invoices/{invoice_id}")
    async def get_invoice(request: Request, invoice_id: UUID):
        return respond(request, invoice_svc.get_by_id(invoice_id))

    @router.patch("/invoices/{invoice_id}/adjust")
    async def adjust_invoice(request: Request, invoice_id: UUID, body: InvoiceAdjust):
        return respond(request, invoice_svc.adjust(invoice_id, body))

    @router.post("/invoices/{invoice_id}/markAsPaid")
    async def mark_as_paid(request: Request, invoice_id: UUID, body: InvoicePayment):
        return respond(request, invoice_svc.mark_as_paid(invoice_id, body))

    @router.post("/invoices/{invoice_id}/installments/{installment_id}/pay")
    async def pay_installment(
        request: Request,
        invoice_id: UUID,
        installment_id: UUID,
        body: InstallmentPay | None = None,
    ):
        paid_at = body.paid_at if body else None
        return respond(request, invoice_svc.pay_installment(invoice_id, installment_id, paid_at))

    @router.post("/invoices/{invoice_id}/sync")
    async def synchronize_invoice(request: Request, invoice_id: UUID):
        return respond(request, invoice_svc.synchronize(invoice_id))

    @router.post("/invoices/{invoice_id}/attendances")
    async def attach_attendance(request: Request, invoice_id: UUID, body: AttendanceAttach):
        return respond(request, invoice_svc.attach_attendance(invoice_id, body.attendance_id))

    @router.patch("/invoices/{invoice_id}/block")
    async def set_blocked(request: Request, invoice_id: UUID, body: InvoiceBlock):
        return respond(request, invoice_svc.set_blocked(invoice_id, body.is_blocked))

    @router.post("/invoices/{invoice_id}/items", status_code=201)
    async def add_manual_item(request: Request, invoice_id: UUID, body: ManualItemCreate):
        return respond(request, invoice_svc.add_manual_item(invoice_id, body))

    @router.delete("/invoices/{invoice_id}/items/{item_id}")
    async def remove_manual_item(request: Request, invoice_id: UUID, item_id: UUID):
        return respond(request, invoice_svc.remove_manual_item(invoice_id, item_id))

    return router
