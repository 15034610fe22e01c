"""Tests for the marketplace checkout API."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from marketplace_checkout.api import create_app
from marketplace_checkout.config import Settings
from marketplace_checkout.main import build_app
from marketplace_checkout.services import CheckoutServices

LOCATION = {
    "country": {"name": "Canada", "isoCode": "CA"},
    "state": {"name": "Ontario", "isoCode": "ON"},
    "city": {"name": "Toronto"},
}

ORDER_FORM = {
    "email": "ada@example.com",
    "phone": "555-0100",
    "shipping": {
        "fullName": "Ada Buyer",
        "address1": "1 King St W",
        "postalCode": "M5H 1A1",
    },
    "sameAsShipping": True,
}


@pytest.fixture
def services(settings, marketplace, fake_bridge):
    return CheckoutServices(
        settings.model_copy(update={"api_url": "http://mock-marketplace/"}),
        transport=httpx.ASGITransport(app=marketplace.app),
        payment_bridge=fake_bridge,
    )


@pytest.fixture
def app(settings, services):
    return create_app(settings, services)


@pytest.fixture
async def client(app, services):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await services.close()


class TestHealth:
    async def test_health_check(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["service"] == "marketplace-checkout"


class TestCheckoutFlow:
    async def test_start_checkout(self, client):
        resp = await client.post("/api/v1/checkout")
        assert resp.status_code == 200
        data = resp.json()
        assert data["phase"] == "cart_ready"
        assert data["orderSummary"]["total"] == 130.0
        assert data["items"][0]["imageUrl"] == "desk-organizer.jpg"

    async def test_validate_reports_missing_shipping(self, client):
        await client.post("/api/v1/checkout")

        resp = await client.post("/api/v1/checkout/validate", json={"sameAsShipping": True})

        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert "shipping address" in data["error"]

    async def test_full_purchase(self, client, marketplace):
        await client.post("/api/v1/checkout")

        resp = await client.put("/api/v1/checkout/shipping-location", json=LOCATION)
        assert resp.json()["billingLocation"]["city"]["name"] == "Toronto"

        resp = await client.post("/api/v1/checkout/validate", json={"sameAsShipping": True})
        assert resp.json()["valid"] is True

        resp = await client.post("/api/v1/checkout/order", json=ORDER_FORM)
        assert resp.status_code == 200
        order = resp.json()
        assert order["paymentStatus"] == "INCOMPLETE"
        assert order["totalAmount"] == 130.0
        assert marketplace.cart_items == []

        resp = await client.post(
            "/api/v1/checkout/payment-method", json={"paymentMethod": "pm_card_visa"}
        )
        assert resp.json()["paymentFormMounted"] is True

        resp = await client.post("/api/v1/checkout/payment", json={"email": "ada@example.com"})
        result = resp.json()
        assert result["success"] is True
        assert result["order"]["paymentStatus"] == "COMPLETED"

        snapshot = (await client.get("/api/v1/checkout")).json()
        assert snapshot["phase"] == "confirmed"
        assert marketplace.products["P1"]["quantity"] == 23

        resp = await client.get("/api/v1/orders", params={"payment_status": "COMPLETED"})
        assert [o["id"] for o in resp.json()["content"]] == [order["id"]]

    async def test_resume_incomplete_order(self, client, marketplace):
        await client.post("/api/v1/checkout")
        await client.put("/api/v1/checkout/shipping-location", json=LOCATION)
        created = (await client.post("/api/v1/checkout/order", json=ORDER_FORM)).json()
        await client.delete("/api/v1/checkout")

        resp = await client.get("/api/v1/checkout/incomplete-orders")
        assert [o["id"] for o in resp.json()] == [created["id"]]

        resp = await client.post(f"/api/v1/checkout/incomplete-orders/{created['id']}/select")
        data = resp.json()
        assert data["phase"] == "payment_form_shown"
        assert data["isFormNeeded"] is False
        assert data["orderSummary"]["total"] == 130.0
        assert len(data["orderSummary"]["items"]) == 1

    async def test_payment_without_form(self, client):
        await client.post("/api/v1/checkout")

        resp = await client.post("/api/v1/checkout/payment", json={"email": "ada@example.com"})

        assert resp.status_code == 200
        assert resp.json() == {
            "success": False,
            "paymentIntentId": None,
            "error": "Payment system not initialized. Please refresh and try again.",
            "requiresAction": False,
            "redirectUrl": None,
            "confirmationPending": False,
            "order": None,
        }


class TestErrors:
    async def test_empty_cart(self, client, marketplace):
        marketplace.cart_items = []

        resp = await client.post("/api/v1/checkout")

        assert resp.status_code == 409
        data = resp.json()
        assert data["error"] == "EmptyCartError"
        assert data["detail"] == "Cart is empty"

    async def test_invalid_transition(self, client):
        resp = await client.post("/api/v1/checkout/payment/reconcile")

        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidTransitionError"

    async def test_order_with_incomplete_address(self, client, marketplace):
        await client.post("/api/v1/checkout")

        resp = await client.post("/api/v1/checkout/order", json=ORDER_FORM)

        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"
        assert "order/checkout/integrated" not in marketplace.request_log

    async def test_unknown_order(self, client):
        resp = await client.get("/api/v1/orders/ORD-MISSING")

        assert resp.status_code == 502
        assert resp.json()["error"] == "GatewayError"


class TestBuiltApp:
    @pytest.fixture
    def demo_settings(self):
        return Settings(environment="testing", mount_mock_backend=True)

    @pytest.fixture
    async def demo_client(self, demo_settings):
        app = build_app(demo_settings)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c

    async def test_mock_backend_mounted(self, demo_client):
        resp = await demo_client.get("/mock-api/product/P1")

        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Walnut Desk Organizer"

    async def test_demo_cart_loads_without_payment_key(self, demo_client):
        resp = await demo_client.post("/api/v1/checkout")

        assert resp.status_code == 200
        data = resp.json()
        assert data["orderSummary"]["subtotal"] == 62.5
        assert data["orderSummary"]["total"] == 172.5
        assert "Stripe is not configured" in data["error"]
