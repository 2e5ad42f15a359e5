# storefront/services/payment_webhook_service.py
import hashlib
import hmac
import json
import re

from sqlalchemy.orm import Session

from storefront.data.models._ids import utcnow
from storefront.domain.errors import NotFoundError, StorefrontError, ValidationError
from storefront.domain.statuses import (
    OrderStatus,
    PaymentStatus,
    PAYMENT_TRANSITIONS,
    can_transition_order,
    is_terminal,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.fulfillment_service import FulfillmentOrchestrator
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUCCESS_CODE = re.compile(r"^(000\.000\.|000\.100\.1|000\.[36])")
PENDING_CODE = re.compile(r"^(000\.200|000\.400)")
MIN_SECRET_LENGTH = 32

SUCCESS = "success"
PENDING = "pending"
FAILED = "failed"
IGNORED = "ignored"


def classify_result(code: str | None) -> str:
    code = code or ""
    if SUCCESS_CODE.match(code):
        return SUCCESS
    if PENDING_CODE.match(code):
        return PENDING
    return FAILED


def sign(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


class PaymentWebhookService:
    """
    Card gateway notifications. A verified event moves the order's payment
    status; a successful payment confirms the order and triggers the same
    digital delivery entry point the retry endpoint uses.
    """

    def __init__(self, db: Session, fulfillment: FulfillmentOrchestrator, secret: str):
        self.db = db
        self.repo = OrderRepo(db)
        self.fulfillment = fulfillment
        self.secret = secret or ""

    def verify_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if len(self.secret) < MIN_SECRET_LENGTH:
            logger.error("Payment webhook secret is not configured or too weak")
            return False
        if not signature:
            return False
        return hmac.compare_digest(signature, sign(raw_body, self.secret))

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> dict:
        if not self.verify_signature(raw_body, signature):
            raise ValidationError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError(f"Webhook body is not valid JSON: {e}") from e

        params = payload.get("customParameters") or {}
        tenant_id = params.get("SHOPPER_tenantId")
        order_id = params.get("SHOPPER_orderId")
        checkout_id = payload.get("id")
        code = (payload.get("result") or {}).get("code")

        if not tenant_id or not order_id:
            logger.error(f"Webhook {checkout_id} without tenant or order id, ignored")
            return {"order_id": order_id, "outcome": IGNORED}

        outcome = classify_result(code)
        logger.info(f"Payment webhook checkout={checkout_id} order={order_id} code={code} -> {outcome}")

        order = self.repo.get_tenant_order(tenant_id, order_id, fresh=True)
        if not order:
            raise NotFoundError("Order", order_id)

        if is_terminal(order.status, order.payment_status):
            logger.warning(f"Webhook for closed order {order_id} ({order.status}/{order.payment_status}) ignored")
            return self._result(order, IGNORED)

        target = {
            SUCCESS: PaymentStatus.SUCCEEDED,
            PENDING: PaymentStatus.PROCESSING,
            FAILED: PaymentStatus.FAILED,
        }[outcome]
        current = PaymentStatus(order.payment_status)
        if target not in PAYMENT_TRANSITIONS[current]:
            # duplicate or out-of-order notification
            logger.info(f"Order {order_id} payment already {current.value}, {target.value} not applied")
            return self._result(order, IGNORED)

        try:
            order.payment_status = target.value
            if outcome == SUCCESS:
                order.transaction_id = checkout_id
                order.paid_at = utcnow()
                if can_transition_order(order.status, OrderStatus.CONFIRMED):
                    order.status = OrderStatus.CONFIRMED.value
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if outcome == SUCCESS:
            try:
                order = self.fulfillment.fulfill(order.id)
            except StorefrontError as e:
                # payment is recorded, delivery stays retryable
                self.repo.rollback()
                logger.error(f"Delivery after payment of order {order_id} failed: {e}")
                order = self.repo.get_order(order_id, fresh=True)

        return self._result(order, outcome)

    @staticmethod
    def _result(order, outcome: str) -> dict:
        return {
            "order_id": order.id,
            "outcome": outcome,
            "payment_status": order.payment_status,
            "status": order.status,
        }
