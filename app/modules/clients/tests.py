"""
Tests para el módulo de Clientes

- CRUD completo
- Número de cliente único
- Búsqueda y orden por nombre
- Borrado de un cliente con facturas (las facturas conservan la copia)
"""

from uuid import uuid4

import pytest


@pytest.fixture
def sample_client_data():
    """Datos de ejemplo para crear clientes"""
    return {
        "name": "Epicerie Ben Salah",
        "clientNumber": "CL0001",
        "address": "Avenue Habib Bourguiba, Bizerte",
        "mf": "1234567/A",
    }


class TestClientCrud:

    def test_create_client(self, client, user_headers, sample_client_data):
        response = client.post("/clients/", headers=user_headers, json=sample_client_data)
        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Epicerie Ben Salah"
        assert body["clientNumber"] == "CL0001"
        assert body["mf"] == "1234567/A"
        assert body["id"]

    def test_optional_fields(self, client, user_headers):
        response = client.post("/clients/", headers=user_headers, json={
            "name": "Cafe Dar Bizerte", "clientNumber": "CL0002",
        })
        assert response.status_code == 201
        assert response.json()["address"] is None
        assert response.json()["mf"] is None

    def test_name_required(self, client, user_headers):
        response = client.post("/clients/", headers=user_headers, json={"clientNumber": "CL0003"})
        assert response.status_code == 400

    def test_duplicate_client_number(self, client, user_headers, sample_client_data):
        client.post("/clients/", headers=user_headers, json=sample_client_data)
        duplicate = dict(sample_client_data, name="Autre client")

        response = client.post("/clients/", headers=user_headers, json=duplicate)
        assert response.status_code == 400
        assert response.json()["message"] == "Client number already exists"

    def test_get_client(self, client, user_headers, sample_client_data):
        created = client.post("/clients/", headers=user_headers, json=sample_client_data).json()
        response = client.get(f"/clients/{created['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["clientNumber"] == "CL0001"

    def test_get_missing_client(self, client, user_headers):
        response = client.get(f"/clients/{uuid4()}", headers=user_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Client not found"

    def test_update_client(self, client, user_headers, sample_client_data):
        created = client.post("/clients/", headers=user_headers, json=sample_client_data).json()
        response = client.put(f"/clients/{created['id']}", headers=user_headers, json={
            "address": "Utique",
        })
        assert response.status_code == 200
        assert response.json()["address"] == "Utique"
        assert response.json()["name"] == "Epicerie Ben Salah"

    def test_update_to_existing_number(self, client, user_headers, sample_client_data):
        client.post("/clients/", headers=user_headers, json=sample_client_data)
        other = client.post("/clients/", headers=user_headers, json={
            "name": "Magasin Nour", "clientNumber": "CL0009",
        }).json()

        response = client.put(f"/clients/{other['id']}", headers=user_headers, json={"clientNumber": "CL0001"})
        assert response.status_code == 400
        assert response.json()["message"] == "Client number already exists"

    def test_delete_client(self, client, user_headers, sample_client_data):
        created = client.post("/clients/", headers=user_headers, json=sample_client_data).json()

        response = client.delete(f"/clients/{created['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Client deleted successfully"
        assert client.get(f"/clients/{created['id']}", headers=user_headers).status_code == 404

    def test_delete_keeps_invoice_snapshot(self, client, user_headers, sample_client_data):
        created = client.post("/clients/", headers=user_headers, json=sample_client_data).json()
        invoice = client.post("/invoices/", headers=user_headers, json={
            "clientId": created["id"],
            "items": [{"designation": "Ricotta", "quantity": 2, "unitPrice": 14.5}],
        }).json()

        client.delete(f"/clients/{created['id']}", headers=user_headers)

        response = client.get(f"/invoices/{invoice['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["clientId"] is None
        assert response.json()["clientName"] == "Epicerie Ben Salah"


class TestClientList:

    def test_sorted_by_name(self, client, user_headers):
        for name, number in [("Zitouna", "CL3"), ("Amal", "CL1"), ("Golfe", "CL2")]:
            client.post("/clients/", headers=user_headers, json={"name": name, "clientNumber": number})

        response = client.get("/clients/", headers=user_headers)
        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Amal", "Golfe", "Zitouna"]

    def test_search(self, client, user_headers):
        client.post("/clients/", headers=user_headers, json={"name": "Hotel Utique Palace", "clientNumber": "CL10"})
        client.post("/clients/", headers=user_headers, json={"name": "Pizzeria Carthage", "clientNumber": "CL11"})

        response = client.get("/clients/?search=utique", headers=user_headers)
        assert [c["clientNumber"] for c in response.json()] == ["CL10"]

    def test_requires_token(self, client):
        assert client.get("/clients/").status_code == 401
