import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock
from uuid import uuid4

from app.core.exceptions import (
    BusinessRuleError,
    CustomerAlreadyExistsError,
    CustomerNotFoundError,
    SerializationError,
)
from app.main import app
from app.models.customer import CustomerStatus
from app.models.outbox import OutboxStatus
from app.schemas.customer import CustomerResponse
from app.schemas.response import PageResponse
from app.testing.testing_mocks import InMemoryOutboxStore


@pytest.fixture
def client():
    return TestClient(app)


def customer_response(**overrides) -> CustomerResponse:
    data = {
        "customer_id": 1,
        "customer_uuid": uuid4(),
        "first_name": "Ravi",
        "last_name": "Kumar",
        "gender": "M",
        "email": "ravi@example.com",
        "mobile_number": "9876543210",
        "pan_number": "ABC*****F",
        "aadhaar_number": "********9012",
        "status": CustomerStatus.PENDING_KYC,
        "active": False,
        "created_at": datetime(2024, 5, 1, 10, 30),
    }
    data.update(overrides)
    return CustomerResponse(**data)


ENQUIRY = {
    "first_name": "Ravi",
    "last_name": "Kumar",
    "gender": "M",
    "email": "ravi@example.com",
    "mobile_number": "9876543210",
    "pan_number": "ABCDE1234F",
    "aadhaar_number": "123456789012",
}


class TestCustomerRoutes:
    def test_create_enquiry_success(self, client):
        """Enquiry registration returns 201 with the masked customer"""
        with patch('app.services.customer_service.create_customer_enquiry', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = customer_response()

            response = client.post("/api/v1/customers/enquiry", json=ENQUIRY)

            assert response.status_code == 201
            body = response.json()
            assert body["success"] is True
            assert body["data"]["status"] == "PENDING_KYC"
            assert body["data"]["pan_number"] == "ABC*****F"
            mock_create.assert_awaited_once()

    def test_create_enquiry_invalid_pan(self, client):
        """Malformed PAN is rejected before reaching the service"""
        with patch('app.services.customer_service.create_customer_enquiry', new_callable=AsyncMock) as mock_create:
            response = client.post("/api/v1/customers/enquiry", json={**ENQUIRY, "pan_number": "abc123"})

            assert response.status_code == 422
            assert response.json()["error"]["code"] == "validation_error"
            mock_create.assert_not_called()

    def test_create_customer_requires_date_of_birth(self, client):
        response = client.post("/api/v1/customers/", json=ENQUIRY)
        assert response.status_code == 422

    def test_duplicate_customer_conflict(self, client):
        with patch('app.services.customer_service.create_customer_enquiry', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = CustomerAlreadyExistsError("PAN number: ABCDE1234F")

            response = client.post("/api/v1/customers/enquiry", json=ENQUIRY)

            assert response.status_code == 409
            assert response.json()["error"]["code"] == "customer_already_exists"

    def test_get_customer_not_found(self, client):
        with patch('app.services.customer_service.get_customer_by_id', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = CustomerNotFoundError("id: 99")

            response = client.get("/api/v1/customers/99")

            assert response.status_code == 404
            body = response.json()
            assert body["success"] is False
            assert body["error"]["code"] == "customer_not_found"
            assert "request_id" in body

    def test_age_rule_violation_is_bad_request(self, client):
        with patch('app.services.customer_service.create_customer', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = BusinessRuleError("AGE_NOT_ELIGIBLE", "Customer age must be between 21 and 65")

            response = client.post("/api/v1/customers/", json={**ENQUIRY, "date_of_birth": "2010-01-01"})

            assert response.status_code == 400
            assert response.json()["error"]["code"] == "AGE_NOT_ELIGIBLE"

    def test_serialization_failure_is_server_error(self, client):
        with patch('app.services.customer_service.create_customer_enquiry', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = SerializationError("bad snapshot")

            response = client.post("/api/v1/customers/enquiry", json=ENQUIRY)

            assert response.status_code == 500
            assert response.json()["error"]["message"] == "Internal Server Error"

    def test_update_status(self, client):
        with patch('app.services.customer_service.update_customer_status', new_callable=AsyncMock) as mock_update:
            mock_update.return_value = customer_response(status=CustomerStatus.INACTIVE)

            response = client.patch("/api/v1/customers/1/status", json={"status": "INACTIVE"})

            assert response.status_code == 200
            assert response.json()["data"]["status"] == "INACTIVE"
            mock_update.assert_awaited_once_with(1, CustomerStatus.INACTIVE)

    def test_update_status_rejects_unknown_value(self, client):
        response = client.patch("/api/v1/customers/1/status", json={"status": "DELETED"})
        assert response.status_code == 422

    def test_list_customers_paginated(self, client):
        with patch('app.services.customer_service.list_customers', new_callable=AsyncMock) as mock_list:
            mock_list.return_value = PageResponse.build([customer_response()], page=0, size=1, total_elements=3)

            response = client.get("/api/v1/customers/?page=0&size=1")

            assert response.status_code == 200
            data = response.json()["data"]
            assert data["total_elements"] == 3
            assert data["total_pages"] == 3
            assert data["first"] is True
            assert data["last"] is False
            mock_list.assert_awaited_once_with(0, 1)

    def test_search_requires_term(self, client):
        response = client.get("/api/v1/customers/search")
        assert response.status_code == 422


class TestOutboxRoutes:
    def test_outbox_stats(self, client):
        counts = {"PENDING": 4, "SENT": 10, "FAILED": 1}
        with patch('app.api.v1.outbox.store.count_by_status', new_callable=AsyncMock) as mock_counts:
            mock_counts.return_value = counts

            response = client.get("/api/v1/outbox/stats")

            assert response.status_code == 200
            assert response.json()["data"] == counts

    def test_outbox_stats_from_any_outbox_store(self, client):
        """The stats endpoint only relies on the OutboxStore interface"""
        store = InMemoryOutboxStore()
        store.add("cust-1")
        store.add("cust-2")
        store.add("cust-3").status = OutboxStatus.SENT

        with patch('app.api.v1.outbox.store', store):
            response = client.get("/api/v1/outbox/stats")

        assert response.status_code == 200
        assert response.json()["data"] == {"PENDING": 2, "SENT": 1, "FAILED": 0}
