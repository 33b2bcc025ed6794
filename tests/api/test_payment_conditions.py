"""Tests for payment condition endpoints."""


class TestListAndGet:

    def test_lists_seeded_conditions(self, client):
        response = client.get("/payment-conditions")

        assert response.status_code == 200
        ids = {c["id"] for c in response.json()["data"]}
        assert {"A_VISTA", "DIAS_30", "CARTAO_2X", "CARTAO_3X"} <= ids

    def test_get_by_id(self, client):
        response = client.get("/payment-conditions/CARTAO_3X")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["installment_count"] == 3
        assert data["day_offset"] == 30

    def test_unknown_is_404(self, client):
        response = client.get("/payment-conditions/NOPE")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestCreate:

    def test_create_returns_201(self, client):
        response = client.post(
            "/payment-conditions",
            json={"id": "BOLETO_4X", "name": "Boleto 4x", "installment_count": 4, "day_offset": 30},
        )

        assert response.status_code == 201
        assert response.json()["data"]["name"] == "Boleto 4x"
        assert client.get("/payment-conditions/BOLETO_4X").status_code == 200

    def test_duplicate_id_is_400(self, client):
        response = client.post(
            "/payment-conditions",
            json={"id": "A_VISTA", "name": "Outro nome", "installment_count": 1},
        )

        assert response.status_code == 400

    def test_lowercase_id_is_422(self, client):
        response = client.post(
            "/payment-conditions",
            json={"id": "boleto", "name": "Boleto", "installment_count": 1},
        )

        assert response.status_code == 422


class TestUpdateAndDelete:

    def test_update(self, client):
        response = client.put("/payment-conditions/DIAS_60", json={"day_offset": 45})

        assert response.status_code == 200
        assert response.json()["data"]["day_offset"] == 45

    def test_delete_unused(self, client):
        response = client.delete("/payment-conditions/DIAS_60")

        assert response.status_code == 200
        assert response.json()["data"] == {"id": "DIAS_60", "deleted": True}
        assert client.get("/payment-conditions/DIAS_60").status_code == 404

    def test_delete_in_use_is_400(self, client, make_attendance):
        attendance = make_attendance(services=[("Consulta", 1, 5000)])
        invoice = client.post("/invoices", json={"attendance_id": str(attendance.id)}).json()["data"]
        client.patch(f"/invoices/{invoice['id']}/adjust", json={"payment_condition_id": "CARTAO_2X"})

        response = client.delete("/payment-conditions/CARTAO_2X")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PAYMENT_CONDITION_IN_USE"
