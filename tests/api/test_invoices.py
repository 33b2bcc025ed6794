"""Tests for invoice endpoints."""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from core.models import AppointmentStatus


@pytest.fixture
def attendance(make_attendance):
    return make_attendance(services=[("Consulta", 1, 5000)])


@pytest.fixture
def created(client, attendance):
    """Invoice payload created through the API."""
    response = client.post("/invoices", json={"attendance_id": str(attendance.id)})
    assert response.status_code == 201
    return response.json()["data"]


class TestInvoiceStatuses:

    def test_lists_statuses_with_labels(self, client):
        response = client.get("/invoice-statuses")

        assert response.status_code == 200
        assert response.json()["data"] == [
            {"value": "OPEN", "label": "Em aberto"},
            {"value": "PARTIALLY_PAID", "label": "Parcialmente paga"},
            {"value": "PAID", "label": "Quitada"},
        ]


class TestCreateInvoice:

    def test_creates_from_attendance(self, client, attendance, staff_id):
        response = client.post("/invoices", json={"attendance_id": str(attendance.id)})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["total_cents"] == 5000
        assert data["status"] == "OPEN"
        assert data["responsible_id"] == str(staff_id)
        assert data["due_date"] == "2024-01-08"
        assert data["items"][0]["origin"]["kind"] == "sourced"
        assert data["stock_warnings"] == []
        assert data["payment_condition_details"] is None

    def test_creates_from_appointment(self, client, attendance):
        response = client.post("/invoices", json={"appointment_id": str(attendance.appointment_id)})

        assert response.status_code == 201
        assert response.json()["data"]["attendance_ids"] == [str(attendance.id)]

    def test_unconcluded_appointment_is_400_with_message(self, client, make_attendance):
        pending = make_attendance(appointment_status=AppointmentStatus.SCHEDULED)

        response = client.post("/invoices", json={"appointment_id": str(pending.appointment_id)})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "ATTENDANCE_NOT_BILLABLE"
        assert error["message"] == "Apenas agendamentos concluídos podem ser faturados."

    def test_explicit_due_date(self, client, attendance):
        response = client.post(
            "/invoices", json={"attendance_id": str(attendance.id), "due_date": "2024-02-15"}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["due_date"] == "2024-02-15"
        assert [i["due_date"] for i in data["installments"]] == ["2024-02-15"]

    def test_requires_exactly_one_source(self, client):
        response = client.post("/invoices", json={})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_attendance_is_404(self, client):
        response = client.post("/invoices", json={"attendance_id": str(uuid4())})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_requires_staff_header(self, unauthed_client, attendance):
        response = unauthed_client.post("/invoices", json={"attendance_id": str(attendance.id)})

        assert response.status_code == 401


class TestReadInvoices:

    def test_get_by_id(self, client, created):
        response = client.get(f"/invoices/{created['id']}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == created["id"]

    def test_get_unknown_is_404(self, client):
        response = client.get(f"/invoices/{uuid4()}")

        assert response.status_code == 404
        assert "não encontrado" in response.json()["error"]["message"]

    def test_list_with_summary(self, client, created, owner_id):
        response = client.get("/invoices", params={"owner_id": str(owner_id), "status": "OPEN"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert [i["id"] for i in data["invoices"]] == [created["id"]]
        assert data["summary"] == {"count": 1, "total_cents": 5000, "paid_cents": 0, "open_cents": 5000}

    def test_candidates_exclude_invoiced_attendances(self, client, created, make_attendance, owner_id):
        pending = make_attendance(services=[("Banho", 1, 3000)])

        response = client.get("/invoices/candidates", params={"owner_id": str(owner_id)})

        assert response.status_code == 200
        data = response.json()["data"]
        assert [a["id"] for a in data] == [str(pending.id)]
        assert data[0]["service_lines"][0]["definition_name"] == "Banho"

    def test_candidates_of_other_owner_are_empty(self, client, make_attendance):
        make_attendance()

        response = client.get("/invoices/candidates", params={"owner_id": str(uuid4())})

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_list_rejects_bad_limit(self, client):
        response = client.get("/invoices", params={"limit": 0})

        assert response.status_code == 422


class TestAdjustAndPay:

    def test_adjust_with_condition(self, client, created):
        response = client.patch(
            f"/invoices/{created['id']}/adjust",
            json={"payment_condition_id": "CARTAO_2X", "due_date": "2024-01-01"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [(i["due_date"], i["amount_cents"]) for i in data["installments"]] == [
            ("2024-01-01", 2500),
            ("2024-01-31", 2500),
        ]
        assert data["payment_condition_details"]["name"] == "Cartão 2x"

    def test_adjust_with_mismatched_plan(self, client, created):
        response = client.patch(
            f"/invoices/{created['id']}/adjust",
            json={"installments": [{"due_date": "2024-01-10", "amount": "10.00"}]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSTALLMENT_SUM_MISMATCH"

    def test_pay_installment_then_locked(self, client, created):
        installment_id = created["installments"][0]["id"]

        paid = client.post(f"/invoices/{created['id']}/installments/{installment_id}/pay")
        assert paid.status_code == 200
        assert paid.json()["data"]["status"] == "PAID"
        assert paid.json()["data"]["paid_at"] is not None

        locked = client.patch(f"/invoices/{created['id']}/adjust", json={"payment_method": "PIX"})
        assert locked.status_code == 400
        assert locked.json()["error"]["code"] == "INVOICE_LOCKED"

    def test_pay_installment_with_date(self, client, created):
        installment_id = created["installments"][0]["id"]

        response = client.post(
            f"/invoices/{created['id']}/installments/{installment_id}/pay",
            json={"paid_at": "2024-01-05T00:00:00"},
        )

        assert response.json()["data"]["paid_at"].startswith("2024-01-05T00:00:00")

    def test_mark_as_paid(self, client, created):
        response = client.post(
            f"/invoices/{created['id']}/markAsPaid",
            json={
                "payment_method": "PIX",
                "installments": [{"due_date": "2024-01-08", "amount_cents": 5000}],
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "PAID"
        assert data["payment_method"] == "PIX"

    def test_mark_as_paid_requires_installments(self, client, created):
        response = client.post(f"/invoices/{created['id']}/markAsPaid", json={"installments": []})

        assert response.status_code == 422

    def test_block_paid_invoice(self, client, created):
        client.post(
            f"/invoices/{created['id']}/markAsPaid",
            json={"installments": [{"due_date": "2024-01-08", "amount_cents": 5000}]},
        )

        response = client.patch(f"/invoices/{created['id']}/block", json={"is_blocked": True})

        assert response.status_code == 200
        assert response.json()["data"]["is_blocked"] is True

    def test_clear_block(self, client, created, store):
        client.patch(f"/invoices/{created['id']}/block", json={"is_blocked": True})

        response = client.patch(f"/invoices/{created['id']}/block", json={"is_blocked": False})

        assert response.status_code == 200
        assert response.json()["data"]["is_blocked"] is False
        updates = [e for e in store.audit_log if e["entity_id"] == created["id"] and e["action"] == "update"]
        assert [e["changes"]["is_blocked"]["new"] for e in updates] == [True, False]

    def test_repeated_block_changes_nothing(self, client, created, store):
        client.patch(f"/invoices/{created['id']}/block", json={"is_blocked": True})
        entries = len(store.audit_log)

        response = client.patch(f"/invoices/{created['id']}/block", json={"is_blocked": True})

        assert response.status_code == 200
        assert response.json()["data"]["is_blocked"] is True
        assert len(store.audit_log) == entries


class TestItemsAndSync:

    def test_add_and_remove_manual_item(self, client, created):
        added = client.post(
            f"/invoices/{created['id']}/items",
            json={"description": "Taxa de urgência", "quantity": 2, "unit_price": "10.00"},
        )
        assert added.status_code == 201
        assert added.json()["data"]["total_cents"] == 7000
        manual = next(i for i in added.json()["data"]["items"] if i["origin"]["kind"] == "manual")

        removed = client.delete(f"/invoices/{created['id']}/items/{manual['id']}")

        assert removed.status_code == 200
        assert removed.json()["data"]["total_cents"] == 5000

    def test_sourced_item_removal_is_400(self, client, created):
        item_id = created["items"][0]["id"]

        response = client.delete(f"/invoices/{created['id']}/items/{item_id}")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ITEM_NOT_REMOVABLE"

    def test_blank_description_is_422(self, client, created):
        response = client.post(
            f"/invoices/{created['id']}/items",
            json={"description": "   ", "unit_price_cents": 100},
        )

        assert response.status_code == 422

    def test_insufficient_stock_is_400(self, client, created, store):
        product = store.add_product(name="Ração renal", stock=0)

        response = client.post(
            f"/invoices/{created['id']}/items",
            json={"description": "Ração", "unit_price_cents": 100, "product_id": str(product.id)},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        assert "Ração renal" in response.json()["error"]["message"]

    def test_sync_returns_stock_warnings(self, client, created, store, attendance, product_line_for):
        line = product_line_for(3, 1000, stock=1)
        store.edit_attendance(attendance.id, product_lines=[line])

        response = client.post(f"/invoices/{created['id']}/sync")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_cents"] == 8000
        (warning,) = data["stock_warnings"]
        assert warning["shortfall"] == 2

    def test_attach_attendance(self, client, created, make_attendance):
        other = make_attendance(services=[("Banho", 1, 4000)])

        response = client.post(
            f"/invoices/{created['id']}/attendances", json={"attendance_id": str(other.id)}
        )

        assert response.status_code == 200
        assert response.json()["data"]["total_cents"] == 9000


class TestUnexpectedErrors:

    def test_unhandled_exception_is_500(self, client, services, attendance, monkeypatch):
        monkeypatch.setattr(
            services["invoice"], "create_for_attendance", Mock(side_effect=RuntimeError("boom"))
        )

        response = client.post("/invoices", json={"attendance_id": str(attendance.id)})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
