"""HTTP-level tests for the storefront API."""

import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_pipeline
from storefront.data.database import get_db
from storefront.main import create_app
from storefront.services.payment_webhook_service import sign

from conftest import TENANT_ID, WEBHOOK_SECRET, connection_error

HEADERS = {"X-Tenant-Id": TENANT_ID}


@pytest.fixture
def client(db, pipeline):
    app = create_app(create_tables=False)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as test_client:
        yield test_client


def new_cart(client, lines, user_id=None):
    resp = client.post("/carts/", json={"session_id": "web-1", "user_id": user_id}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    cart_id = resp.json()["id"]
    params = {"user_id": user_id} if user_id else None
    for product, quantity in lines:
        resp = client.post(
            f"/carts/{cart_id}/items",
            json={"product_id": product.id, "quantity": quantity},
            params=params,
            headers=HEADERS,
        )
        assert resp.status_code == 200, resp.text
    return resp.json()


def place_order(client, cart_id, user_id=None, **extra):
    body = {"cart_id": cart_id, "customer_email": "buyer@example.com", "payment_method": "CARD", **extra}
    params = {"user_id": user_id} if user_id else None
    return client.post("/orders/", json=body, params=params, headers=HEADERS)


def top_up(client, user_id, amount, reference):
    return client.post(
        f"/wallets/{user_id}/top-up",
        json={"amount": str(amount), "reference": reference},
        headers=HEADERS,
    )


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestCarts:
    def test_cart_totals(self, client, physical_product):
        cart = new_cart(client, [(physical_product, 2)])

        assert Decimal(cart["total"]) == Decimal("50")
        assert cart["items"][0]["quantity"] == 2

    def test_tenant_header_required(self, client):
        resp = client.post("/carts/", json={"session_id": "web-1"})

        assert resp.status_code == 422

    def test_unknown_cart(self, client, tenant):
        resp = client.get("/carts/missing", headers=HEADERS)

        assert resp.status_code == 404
        assert resp.json()["error_type"] == "NotFoundError"

    def test_zero_quantity_rejected(self, client, physical_product):
        cart = new_cart(client, [])
        resp = client.post(
            f"/carts/{cart['id']}/items",
            json={"product_id": physical_product.id, "quantity": 0},
            headers=HEADERS,
        )

        assert resp.status_code == 422

    def test_clear_cart(self, client, physical_product):
        cart = new_cart(client, [(physical_product, 1)])

        assert client.delete(f"/carts/{cart['id']}/items", headers=HEADERS).status_code == 204
        assert client.get(f"/carts/{cart['id']}", headers=HEADERS).json()["items"] == []


class TestOrders:
    def test_wallet_order_delivers_codes(self, client, digital_product):
        assert top_up(client, "u1", 150, "pay-1").status_code == 200
        cart = new_cart(client, [(digital_product, 1)], user_id="u1")

        resp = place_order(client, cart["id"], user_id="u1", payment_method="WALLET_BALANCE", delivery_options=["text", "csv"])

        assert resp.status_code == 201, resp.text
        order = resp.json()
        assert order["status"] == "DELIVERED"
        assert order["payment_status"] == "SUCCEEDED"
        assert order["payment_method"] == "WALLET_BALANCE"
        assert order["delivery_files"]["serial_numbers"] == ["GC100-1-0"]
        assert set(order["delivery_files"]["export_artifacts"]) == {"text", "csv"}

        wallet = client.get("/wallets/u1").json()
        assert Decimal(wallet["balance"]) == Decimal("50")

    def test_insufficient_balance_conflicts(self, client, digital_product):
        top_up(client, "u1", 40, "pay-1")
        cart = new_cart(client, [(digital_product, 1)], user_id="u1")

        resp = place_order(client, cart["id"], user_id="u1", use_wallet_balance=True)

        assert resp.status_code == 409
        assert resp.json()["error_type"] == "InsufficientBalanceError"

    def test_cash_on_delivery_refused_for_digital(self, client, digital_product):
        cart = new_cart(client, [(digital_product, 1)])

        resp = place_order(client, cart["id"], payment_method="CASH_ON_DELIVERY")

        assert resp.status_code == 400
        assert "Cash on delivery" in resp.json()["detail"]

    def test_list_and_search(self, client, physical_product):
        cart = new_cart(client, [(physical_product, 1)])
        created = place_order(client, cart["id"]).json()

        listing = client.get("/orders/", params={"status": "APPROVED"}, headers=HEADERS).json()
        assert [o["id"] for o in listing["data"]] == [created["id"]]

        found = client.get("/orders/search", params={"q": created["order_number"]}, headers=HEADERS).json()
        assert found["total"] == 1

        bad = client.get("/orders/", params={"status": "LOST"}, headers=HEADERS)
        assert bad.status_code == 400

    def test_get_order_of_other_tenant(self, client, physical_product):
        cart = new_cart(client, [(physical_product, 1)])
        created = place_order(client, cart["id"]).json()

        resp = client.get(f"/orders/{created['id']}", headers={"X-Tenant-Id": "tenant-2"})

        assert resp.status_code == 404

    def test_retry_then_refund(self, client, supplier, digital_product):
        top_up(client, "u1", 150, "pay-1")
        cart = new_cart(client, [(digital_product, 1)], user_id="u1")
        supplier.fail_with = connection_error()
        created = place_order(client, cart["id"], user_id="u1", use_wallet_balance=True).json()
        assert created["delivery_files"]["error"]
        supplier.fail_with = None

        retried = client.post(f"/orders/{created['id']}/retry-delivery", params={"user_id": "u1"}, headers=HEADERS)
        assert retried.json()["status"] == "DELIVERED"

        again = client.post(f"/orders/{created['id']}/retry-delivery", headers=HEADERS)
        assert again.status_code == 409

        refunded = client.post(f"/orders/{created['id']}/refund", json={"reason": "duplicate"}, headers=HEADERS)
        assert refunded.json()["status"] == "REFUNDED"
        assert Decimal(client.get("/wallets/u1").json()["balance"]) == Decimal("150")

        transactions = client.get("/wallets/u1/transactions").json()
        assert [t["type"] for t in transactions["data"]][:2] == ["REFUND", "PURCHASE"]

    def test_reveal_requires_payer(self, client, digital_product):
        top_up(client, "u1", 150, "pay-1")
        cart = new_cart(client, [(digital_product, 1)], user_id="u1")
        created = place_order(client, cart["id"], user_id="u1", payment_method="WALLET_BALANCE").json()

        assert client.post(f"/orders/{created['id']}/reveal", headers=HEADERS).status_code == 422
        assert client.post(f"/orders/{created['id']}/reveal", params={"user_id": "u2"}, headers=HEADERS).status_code == 403

        revealed = client.post(f"/orders/{created['id']}/reveal", params={"user_id": "u1"}, headers=HEADERS)
        assert revealed.json()["delivery_files"]["serial_numbers"] == created["delivery_files"]["serial_numbers"]

    def test_cancel_without_body(self, client, physical_product):
        cart = new_cart(client, [(physical_product, 1)])
        created = place_order(client, cart["id"]).json()

        resp = client.post(f"/orders/{created['id']}/cancel", headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"


class TestPaymentWebhook:
    def test_signed_success(self, client, digital_product):
        cart = new_cart(client, [(digital_product, 1)])
        created = place_order(client, cart["id"]).json()
        body = json.dumps(
            {
                "id": "chk-7",
                "result": {"code": "000.100.110"},
                "customParameters": {"SHOPPER_tenantId": TENANT_ID, "SHOPPER_orderId": created["id"]},
            }
        ).encode()

        resp = client.post(
            "/payments/webhook",
            content=body,
            headers={"X-Webhook-Signature": sign(body, WEBHOOK_SECRET), "Content-Type": "application/json"},
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "DELIVERED"

    def test_unsigned_rejected(self, client):
        resp = client.post("/payments/webhook", content=b"{}")

        assert resp.status_code == 400
        assert resp.json()["error_type"] == "ValidationError"


class TestEmergencyInventory:
    def test_upsert_list_delete(self, client, physical_product):
        resp = client.post(
            "/inventory/emergency",
            json={"items": [{"product_id": physical_product.id, "reason": "needed", "notes": "restock"}]},
            headers=HEADERS,
        )
        assert resp.status_code == 201
        assert resp.json() == {"upserted": 1}

        listing = client.get("/inventory/emergency", headers=HEADERS).json()
        assert listing["data"][0]["reason"] == "needed"

        assert client.delete(f"/inventory/emergency/{physical_product.id}", headers=HEADERS).status_code == 204
        assert client.delete(f"/inventory/emergency/{physical_product.id}", headers=HEADERS).status_code == 404

    def test_invalid_reason(self, client, physical_product):
        resp = client.post(
            "/inventory/emergency",
            json={"items": [{"product_id": physical_product.id, "reason": "lost"}]},
            headers=HEADERS,
        )

        assert resp.status_code == 422

    def test_audit(self, client, digital_product):
        resp = client.post("/inventory/emergency/audit", headers=HEADERS)

        assert resp.json() == {"cost_gt_price": 0, "needed": 0}


class TestWallets:
    def test_balance_check(self, client):
        top_up(client, "u1", 150, "pay-1")

        enough = client.get("/wallets/u1/balance-check", params={"amount": "100"}).json()
        assert enough["sufficient"] is True
        assert Decimal(enough["balance"]) == Decimal("150")
        assert Decimal(enough["available"]) == Decimal("150")

        short = client.get("/wallets/u1/balance-check", params={"amount": "200"}).json()
        assert short["sufficient"] is False

    def test_balance_check_without_wallet(self, client):
        resp = client.get("/wallets/nobody/balance-check", params={"amount": "1"})

        assert resp.status_code == 200
        assert resp.json()["sufficient"] is False
        assert Decimal(resp.json()["balance"]) == Decimal("0")

    def test_balance_check_needs_positive_amount(self, client):
        assert client.get("/wallets/u1/balance-check", params={"amount": "0"}).status_code == 422
