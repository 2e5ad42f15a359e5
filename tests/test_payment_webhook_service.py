"""Tests for card gateway notifications."""

import json

import pytest

from storefront.domain.errors import NotFoundError, ValidationError
from storefront.services.payment_webhook_service import (
    PaymentWebhookService,
    classify_result,
    sign,
)

from conftest import TENANT_ID, WEBHOOK_SECRET, make_cart, order_request


def notification(order_id, code, tenant_id=TENANT_ID, checkout_id="chk-1"):
    payload = {
        "id": checkout_id,
        "result": {"code": code, "description": "gateway result"},
        "customParameters": {"SHOPPER_tenantId": tenant_id, "SHOPPER_orderId": order_id},
    }
    return json.dumps(payload).encode()


def deliver(pipeline, body, secret=WEBHOOK_SECRET):
    return pipeline.webhooks.handle_webhook(body, sign(body, secret))


@pytest.fixture
def card_order(pipeline, digital_product):
    cart = make_cart(pipeline, [(digital_product, 1)])
    return pipeline.orders.create_order(TENANT_ID, order_request(cart))


class TestClassifyResult:
    @pytest.mark.parametrize("code", ["000.000.000", "000.100.110", "000.300.000", "000.600.000"])
    def test_success_codes(self, code):
        assert classify_result(code) == "success"

    @pytest.mark.parametrize("code", ["000.200.000", "000.400.010"])
    def test_pending_codes(self, code):
        assert classify_result(code) == "pending"

    @pytest.mark.parametrize("code", ["800.100.151", "100.400.500", "", None])
    def test_everything_else_failed(self, code):
        assert classify_result(code) == "failed"


class TestHandleWebhook:
    def test_success_confirms_and_delivers(self, pipeline, card_order, supplier):
        assert card_order.payment_status == "PENDING"
        assert supplier.create_calls == []

        result = deliver(pipeline, notification(card_order.id, "000.000.000"))

        assert result["outcome"] == "success"
        assert result["payment_status"] == "SUCCEEDED"
        assert result["status"] == "DELIVERED"
        order = pipeline.orders.get_order(TENANT_ID, card_order.id)
        assert order.transaction_id == "chk-1"
        assert order.paid_at is not None
        assert order.delivery_files["serial_numbers"] == ["GC100-1-0"]

    def test_pending_marks_processing(self, pipeline, card_order):
        result = deliver(pipeline, notification(card_order.id, "000.200.100"))

        assert result["outcome"] == "pending"
        assert result["payment_status"] == "PROCESSING"
        assert result["status"] == "APPROVED"

    def test_failure_marks_failed(self, pipeline, card_order, supplier):
        result = deliver(pipeline, notification(card_order.id, "800.100.151"))

        assert result["payment_status"] == "FAILED"
        assert supplier.create_calls == []

    def test_duplicate_success_is_ignored(self, pipeline, card_order, supplier):
        body = notification(card_order.id, "000.000.000")
        deliver(pipeline, body)

        result = deliver(pipeline, body)

        assert result["outcome"] == "ignored"
        assert len(supplier.create_calls) == 1

    def test_closed_order_is_ignored(self, pipeline, card_order):
        pipeline.compensation.cancel_order(TENANT_ID, card_order.id)

        result = deliver(pipeline, notification(card_order.id, "000.000.000"))

        assert result["outcome"] == "ignored"
        assert result["status"] == "CANCELLED"

    def test_bad_signature_rejected(self, pipeline, card_order):
        body = notification(card_order.id, "000.000.000")

        with pytest.raises(ValidationError, match="signature"):
            pipeline.webhooks.handle_webhook(body, sign(body, "x" * 40))

    def test_missing_signature_rejected(self, pipeline, card_order):
        with pytest.raises(ValidationError):
            pipeline.webhooks.handle_webhook(notification(card_order.id, "000.000.000"), None)

    def test_weak_secret_rejects_everything(self, db, pipeline, card_order):
        service = PaymentWebhookService(db, pipeline.fulfillment, "short")
        body = notification(card_order.id, "000.000.000")

        with pytest.raises(ValidationError):
            service.handle_webhook(body, sign(body, "short"))

    def test_invalid_json(self, pipeline):
        with pytest.raises(ValidationError, match="JSON"):
            deliver(pipeline, b"not json")

    def test_missing_parameters_ignored(self, pipeline):
        body = json.dumps({"id": "chk-9", "result": {"code": "000.000.000"}}).encode()

        assert deliver(pipeline, body)["outcome"] == "ignored"

    def test_unknown_order(self, pipeline, tenant):
        with pytest.raises(NotFoundError):
            deliver(pipeline, notification("missing", "000.000.000"))

    def test_other_tenant_cannot_touch_order(self, pipeline, card_order):
        with pytest.raises(NotFoundError):
            deliver(pipeline, notification(card_order.id, "000.000.000", tenant_id="tenant-2"))
