"""Payment condition endpoints."""

from fastapi import APIRouter, Request

from api.base import success_response, request_id_of
from core.models import PaymentConditionCreate, PaymentConditionUpdate


def create_payment_condition_router(services: dict) -> APIRouter:
    router = APIRouter()

    condition_svc = services["payment_condition"]

    @router.get("/payment-conditions")
    async def list_conditions(request: Request):
        conditions = condition_svc.list_all()
        return success_response(
            [c.model_dump(mode="json") for c in conditions], request_id_of(request)
        ).model_dump(mode="json")

    @router.get("/payment-conditions/{condition_id}")
    async def get_condition(request: Request, condition_id: str):
        condition = condition_svc.get_by_id(condition_id)
        return success_response(condition.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.post("/payment-conditions", status_code=201)
    async def create_condition(request: Request, body: PaymentConditionCreate):
        condition = condition_svc.create(body)
        return success_response(condition.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.put("/payment-conditions/{condition_id}")
    async def update_condition(request: Request, condition_id: str, body: PaymentConditionUpdate):
        condition = condition_svc.update(condition_id, body)
        return success_response(condition.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.delete("/payment-conditions/{condition_id}")
    async def delete_condition(request: Request, condition_id: str):
        condition_svc.delete(condition_id)
        return success_response({"id": condition_id, "deleted": True}, request_id_of(request)).model_dump(mode="json")

    return router
