"""
Client registry API tests — CRUD, uniqueness, search and pagination.
"""

import pytest

from app.core.exceptions import ConflictError, ValidationError
from app.services import client_service


def _client_body(**overrides):
    body = {
        "customer_id": "CID-1",
        "customer_number": "CN-1",
        "name": "Amani Builders",
        "email": "info@amani.example.com",
        "phone": "+254700000000",
        "address": "Nairobi",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def created(client, rm_headers):
    res = client.post("/api/v1/clients", json=_client_body(), headers=rm_headers)
    assert res.status_code == 201
    return res.get_json()


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

class TestClientCrud:
    def test_create(self, created):
        assert created["customer_number"] == "CN-1"
        assert created["phone"] == "+254700000000"
        assert created["project_name"] is None

    def test_create_accepts_camel_case(self, client, rm_headers):
        res = client.post("/api/v1/clients", headers=rm_headers, json={
            "customerId": "CID-9", "customerNumber": "CN-9",
            "name": "Camel Co", "email": "camel@co.example.com", "projectName": "Villa",
        })
        assert res.status_code == 201
        assert res.get_json()["project_name"] == "Villa"

    def test_create_missing_required(self, client, rm_headers):
        res = client.post("/api/v1/clients", headers=rm_headers, json={"name": "Only a name"})
        assert res.status_code == 400
        missing = res.get_json()["details"]["missing"]
        assert set(missing) == {"customer_id", "customer_number", "email"}

    def test_create_invalid_email(self, client, rm_headers):
        res = client.post("/api/v1/clients", headers=rm_headers, json=_client_body(email="nope"))
        assert res.status_code == 400

    def test_field_too_long(self, client, rm_headers):
        res = client.post("/api/v1/clients", headers=rm_headers, json=_client_body(phone="9" * 21))
        assert res.status_code == 400
        assert "phone" in res.get_json()["details"]

    def test_duplicate_customer_number(self, client, rm_headers, created):
        res = client.post("/api/v1/clients", headers=rm_headers,
                          json=_client_body(customer_id="CID-2"))
        assert res.status_code == 409
        assert res.get_json()["details"]["field"] == "customer_number"

    def test_duplicate_customer_id(self, client, rm_headers, created):
        res = client.post("/api/v1/clients", headers=rm_headers,
                          json=_client_body(customer_number="CN-2"))
        assert res.status_code == 409
        assert res.get_json()["details"]["field"] == "customer_id"

    def test_get_by_id_and_number(self, client, rm_headers, created):
        assert client.get(f"/api/v1/clients/{created['id']}", headers=rm_headers).status_code == 200
        res = client.get("/api/v1/clients/customer/CN-1", headers=rm_headers)
        assert res.status_code == 200
        assert res.get_json()["id"] == created["id"]

    def test_get_unknown(self, client, rm_headers):
        assert client.get("/api/v1/clients/does-not-exist", headers=rm_headers).status_code == 404
        assert client.get("/api/v1/clients/customer/none", headers=rm_headers).status_code == 404

    def test_update(self, client, rm_headers, created):
        res = client.put(f"/api/v1/clients/{created['id']}", headers=rm_headers,
                         json=_client_body(name="Amani Builders Ltd"))
        assert res.status_code == 200
        assert res.get_json()["name"] == "Amani Builders Ltd"

    def test_partial_update_keeps_other_fields(self, client, rm_headers, created):
        res = client.put(f"/api/v1/clients/{created['id']}", headers=rm_headers,
                         json={"name": "Amani Holdings"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["name"] == "Amani Holdings"
        assert data["customer_number"] == "CN-1"
        assert data["email"] == "info@amani.example.com"
        assert data["phone"] == "+254700000000"

    def test_update_without_contact_fields_keeps_them(self, client, rm_headers, created):
        body = _client_body(project_name="Riverside")
        del body["phone"], body["address"]
        res = client.put(f"/api/v1/clients/{created['id']}", headers=rm_headers, json=body)
        assert res.status_code == 200
        data = res.get_json()
        assert data["phone"] == "+254700000000"
        assert data["address"] == "Nairobi"
        assert data["project_name"] == "Riverside"

    def test_update_cannot_blank_required_field(self, client, rm_headers, created):
        res = client.put(f"/api/v1/clients/{created['id']}", headers=rm_headers,
                         json={"email": "  "})
        assert res.status_code == 400
        assert res.get_json()["details"]["missing"] == ["email"]

    def test_update_into_existing_number_conflicts(self, client, rm_headers, created):
        other = client.post("/api/v1/clients", headers=rm_headers,
                            json=_client_body(customer_id="CID-2", customer_number="CN-2")).get_json()
        res = client.put(f"/api/v1/clients/{other['id']}", headers=rm_headers,
                         json=_client_body(customer_id="CID-2", customer_number="CN-1"))
        assert res.status_code == 409

    def test_delete(self, client, rm_headers, created):
        res = client.delete(f"/api/v1/clients/{created['id']}", headers=rm_headers)
        assert res.status_code == 204
        assert client.get(f"/api/v1/clients/{created['id']}", headers=rm_headers).status_code == 404


# ═══════════════════════════════════════════════════════════════
# List & search
# ═══════════════════════════════════════════════════════════════

class TestClientListing:
    def _seed(self, n):
        for i in range(n):
            client_service.create_client(_client_body(
                customer_id=f"CID-{i:02d}", customer_number=f"CN-{i:02d}",
                name=f"Client {i:02d}", email=f"c{i}@x.example.com",
            ))

    def test_paginated_list(self, client, rm_headers):
        self._seed(12)
        res = client.get("/api/v1/clients?page=2&page_size=5", headers=rm_headers)
        data = res.get_json()
        assert data["total"] == 12
        assert data["page"] == 2
        assert data["total_pages"] == 3
        assert [c["name"] for c in data["items"]] == [f"Client {i:02d}" for i in range(5, 10)]

    def test_search_limited_to_ten(self, client, rm_headers):
        self._seed(12)
        res = client.get("/api/v1/clients/search?q=client", headers=rm_headers)
        assert len(res.get_json()) == 10

    def test_search_empty_term(self, client, rm_headers):
        self._seed(2)
        assert client.get("/api/v1/clients/search?q=", headers=rm_headers).get_json() == []

    def test_list_search_filter(self, client, rm_headers):
        self._seed(3)
        res = client.get("/api/v1/clients?search=CN-01", headers=rm_headers)
        assert [c["customer_number"] for c in res.get_json()["items"]] == ["CN-01"]


class TestClientService:
    def test_service_raises_conflict(self):
        client_service.create_client(_client_body())
        with pytest.raises(ConflictError):
            client_service.create_client(_client_body(customer_id="CID-other"))

    def test_service_raises_validation(self):
        with pytest.raises(ValidationError):
            client_service.create_client({})
