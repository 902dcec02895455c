"""
Tests for shipping API routes.
"""
import base64
import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeCarrier, make_rate, make_shipment

from atelier.api.deps import Operator, get_current_operator
from atelier.api.routes.shipping import shipping_service_dependency
from atelier.core.database import get_db
from atelier.core.exceptions import CarrierAPIError
from atelier.core.security import create_access_token
from atelier.main import app
from atelier.models import ShipmentStatus
from atelier.services.shipping_service import ShippingService


def scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def carrier():
    return FakeCarrier(rates=[make_rate("Correios", "PAC", "25.00", "2.00")])


@pytest.fixture
def service(mock_db, carrier, sample_task, sample_company):
    service = ShippingService(mock_db, carrier=carrier)
    service._get_task = AsyncMock(return_value=sample_task)
    service._get_company_settings = AsyncMock(return_value=sample_company)
    service._get_carrier_rules = AsyncMock(return_value=[])
    service._get_latest_quote_total = AsyncMock(return_value=None)
    return service


@pytest.fixture
def client(mock_db, service):
    async def override_db():
        yield mock_db

    async def override_service():
        yield service

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[shipping_service_dependency] = override_service
    app.dependency_overrides[get_current_operator] = lambda: Operator(id="op-1", email="op@atelier.example")
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuth:

    def test_requires_token(self, mock_db):
        async def override_db():
            yield mock_db

        app.dependency_overrides[get_db] = override_db
        try:
            response = TestClient(app).get("/api/shipping/balance")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code in (401, 403)

    def test_invalid_token(self, service):
        async def override_service():
            yield service

        app.dependency_overrides[shipping_service_dependency] = override_service
        try:
            response = TestClient(app).get(
                "/api/shipping/balance", headers={"Authorization": "Bearer not-a-jwt"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401

    def test_valid_token(self, mock_db, service):
        async def override_service():
            yield service

        app.dependency_overrides[shipping_service_dependency] = override_service
        token = create_access_token({"sub": "op-7"})
        try:
            response = TestClient(app).get(
                "/api/shipping/balance", headers={"Authorization": f"Bearer {token}"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert Decimal(str(response.json()["balance"])) == Decimal("250.75")


class TestQuoteEndpoint:

    def test_quote(self, client):
        response = client.post("/api/shipping/quotes", json={"task_id": "task-1"})

        assert response.status_code == 200
        data = response.json()
        [rate] = data["rates"]
        assert rate["carrier_name"] == "Correios"
        assert Decimal(str(rate["final_price"])) == Decimal("28.00")
        assert Decimal(str(data["dimensions"]["calculated"]["weight"])) == Decimal("6.8")
        assert len(data["dimensions"]["warnings"]) == 1

    def test_quote_configuration_error(self, client, sample_task):
        sample_task.customer.postal_code = None

        response = client.post("/api/shipping/quotes", json={"task_id": "task-1"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SHIPPING_NOT_CONFIGURED"

    def test_quote_carrier_error(self, client, carrier):
        carrier.error = CarrierAPIError("Melhor Envio error: bad gateway", code="503")

        response = client.post("/api/shipping/quotes", json={"task_id": "task-1"})

        assert response.status_code == 502
        assert "bad gateway" in response.json()["detail"]["message"]

    def test_quote_validation(self, client):
        response = client.post("/api/shipping/quotes", json={})
        assert response.status_code == 422


class TestShipmentEndpoints:

    def test_create_shipment(self, client, mock_db):
        response = client.post("/api/shipping/shipments", json={
            "task_id": "task-1",
            "service_id": 1,
            "carrier_name": "Correios",
            "service_name": "PAC",
            "final_price": "28.00",
            "delivery_time": 7,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["melhor_envio_id"] == "me-order-1"
        assert data["created_by"] == "op-1"
        mock_db.commit.assert_awaited()

    def test_print_label(self, client, mock_db):
        mock_db.execute.return_value = scalar_result(make_shipment("me-1"))

        response = client.post("/api/shipping/shipments/me-1/label")

        assert response.status_code == 200
        assert response.json()["label_url"] == "https://labels.example/abc.pdf"

    def test_print_label_cancelled_conflict(self, client, mock_db):
        mock_db.execute.return_value = scalar_result(make_shipment("me-1", ShipmentStatus.CANCELLED))

        response = client.post("/api/shipping/shipments/me-1/label")

        assert response.status_code == 409

    def test_cancel(self, client, mock_db):
        mock_db.execute.return_value = scalar_result(make_shipment("me-1", ShipmentStatus.POSTED))

        response = client.post("/api/shipping/shipments/me-1/cancel", json={"reason_id": "2"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelled_at"] is not None

    def test_shipment_not_found(self, client, mock_db):
        mock_db.execute.return_value = scalar_result(None)

        response = client.post("/api/shipping/shipments/missing/sync")

        assert response.status_code == 404

    def test_list_shipments(self, client, mock_db, sample_task):
        shipment = make_shipment("me-1")
        shipment.task = sample_task
        result = MagicMock()
        result.scalars.return_value.all.return_value = [shipment]
        mock_db.execute.return_value = result

        response = client.get("/api/shipping/shipments", params={"status": "pending", "limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["shipments"][0]["order_number"] == "PED-2024-001"
        assert data["shipments"][0]["customer_name"] == "Clube Atlético Vila Nova"

    def test_list_rejects_unknown_status(self, client):
        response = client.get("/api/shipping/shipments", params={"status": "lost"})
        assert response.status_code == 422

    def test_batch_sync(self, client, mock_db):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db.execute.return_value = result

        response = client.post("/api/shipping/shipments/sync")

        assert response.status_code == 200
        assert response.json() == {"checked": 0, "updated": 0, "missing": []}


class TestWebhookEndpoint:

    SECRET = "whsec-test"

    def sign(self, body: bytes) -> str:
        digest = hmac.new(self.SECRET.encode(), body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    @pytest.fixture
    def webhook_client(self, mock_db):
        async def override_db():
            yield mock_db

        app.dependency_overrides[get_db] = override_db
        with patch("atelier.api.routes.webhooks.settings") as mock_settings, \
                patch("atelier.api.routes.webhooks.ShippingService",
                      side_effect=lambda db: ShippingService(db, carrier=FakeCarrier())):
            mock_settings.MELHOR_ENVIO_WEBHOOK_SECRET = self.SECRET
            mock_settings.ENVIRONMENT = "development"
            yield TestClient(app)
        app.dependency_overrides.clear()

    def test_signed_webhook_applies_status(self, webhook_client, mock_db):
        shipment = make_shipment("me-1", ShipmentStatus.POSTED)
        mock_db.execute.return_value = scalar_result(shipment)
        body = json.dumps({"order_id": "me-1", "status": "delivered", "tracking": "AA1BR"}).encode()

        response = webhook_client.post(
            "/api/webhooks/melhor-envio",
            content=body,
            headers={"X-ME-Signature": self.sign(body), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert shipment.status == ShipmentStatus.DELIVERED
        assert shipment.delivered_at is not None
        mock_db.commit.assert_awaited()

    def test_bad_signature_rejected(self, webhook_client):
        body = b'{"order_id": "me-1", "status": "delivered"}'

        response = webhook_client.post(
            "/api/webhooks/melhor-envio",
            content=body,
            headers={"X-ME-Signature": "forged"},
        )

        assert response.status_code == 401

    def test_unknown_shipment_acknowledged(self, webhook_client, mock_db):
        mock_db.execute.return_value = scalar_result(None)
        body = b'{"order_id": "ghost", "status": "posted"}'

        response = webhook_client.post(
            "/api/webhooks/melhor-envio",
            content=body,
            headers={"X-ME-Signature": self.sign(body)},
        )

        assert response.status_code == 200
        assert response.json()["success"] is False


class TestHealth:

    def test_root(self):
        response = TestClient(app).get("/")
        assert response.json()["status"] == "operational"
