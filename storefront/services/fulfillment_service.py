# storefront/services/fulfillment_service.py
import requests
from sqlalchemy.orm import Session

from storefront.data.models._ids import utcnow
from storefront.data.models.order import OrderModel
from storefront.domain.errors import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
)
from storefront.domain.statuses import (
    EmergencyReason,
    OrderStatus,
    PaymentStatus,
    WalletDebitState,
    can_transition_order,
    ensure_payment_transition,
    is_terminal,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.digital_delivery_service import (
    DeliveryItem,
    DeliveryResult,
    DigitalCardsDeliveryService,
)
from storefront.services.emergency_inventory_service import EmergencyInventoryService
from storefront.services.notification_service import NotificationService
from storefront.services.wallet_service import WalletService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _debit_state(order: OrderModel) -> WalletDebitState:
    if order.settlement is None:
        return WalletDebitState.NOT_APPLICABLE
    return WalletDebitState(order.settlement.wallet_debit_state)


class SettlementReconciler:
    """
    Finalizes a deferred wallet debit once delivery is confirmed.

    The settlement row moves RESERVED -> CHARGED with an optimistic
    ``UPDATE ... WHERE state='RESERVED' AND version=?`` in the same
    transaction as the debit. Whoever loses that race sees rowcount 0 and
    does nothing, so a confirmed delivery is charged exactly once.
    """

    def __init__(self, db: Session, wallet_service: WalletService):
        self.db = db
        self.orders = OrderRepo(db)
        self.wallet = wallet_service

    def settle(self, order: OrderModel) -> bool:
        """Returns True when the order's wallet payment is charged after the call."""
        state = _debit_state(order)
        if state == WalletDebitState.CHARGED:
            return True
        if state != WalletDebitState.RESERVED:
            return order.payment_status == PaymentStatus.SUCCEEDED.value

        settlement = order.settlement
        try:
            updated = self.orders.transition_settlement(
                order.id,
                WalletDebitState.RESERVED.value,
                WalletDebitState.CHARGED.value,
                settlement.version,
            )
            if updated == 0:
                self.db.rollback()
                current = self.orders.get_order(order.id, fresh=True)
                charged = _debit_state(current) == WalletDebitState.CHARGED
                logger.info(f"Settlement of order {order.id} already handled elsewhere (charged={charged})")
                return charged

            self.wallet.debit(
                settlement.payer_id,
                order.total,
                description=f"Payment for order {order.order_number}",
                description_ar=f"دفع للطلب {order.order_number}",
                reference=order.id,
                commit=False,
            )

            ensure_payment_transition(order.payment_status, PaymentStatus.SUCCEEDED)
            order.payment_status = PaymentStatus.SUCCEEDED.value
            order.paid_at = utcnow()
            files = dict(order.delivery_files or {})
            files["requires_reveal"] = False
            order.delivery_files = files
            self.db.commit()
        except InsufficientBalanceError:
            self.db.rollback()
            logger.warning(f"Deferred debit for order {order.id} failed: insufficient balance, codes stay masked")
            return False
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.id} settled: wallet of {settlement.payer_id} charged {order.total}")
        return True


class FulfillmentOrchestrator:
    """
    Obtains codes for the instant lines of an order from the supplier and
    decides whether the customer sees them now or after settlement.
    Runs after the order transaction has committed; a failure is recorded
    on the order and leaves it retryable.
    """

    def __init__(
        self,
        db: Session,
        delivery_service: DigitalCardsDeliveryService,
        reconciler: SettlementReconciler,
        emergency_service: EmergencyInventoryService,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.delivery = delivery_service
        self.reconciler = reconciler
        self.emergency = emergency_service
        self.notifier = notifier

    def fulfill(self, order_id: str) -> OrderModel:
        order = self.orders.get_order(order_id, fresh=True)
        if not order:
            raise NotFoundError("Order", order_id)

        if not order.has_instant_items:
            return order

        paid = order.payment_status == PaymentStatus.SUCCEEDED.value
        reserved = _debit_state(order) == WalletDebitState.RESERVED
        if is_terminal(order.status, order.payment_status) or not (paid or reserved):
            logger.info(
                f"Order {order.id} not eligible for delivery "
                f"(status={order.status}, payment={order.payment_status})"
            )
            return order

        if (order.delivery_files or {}).get("serial_numbers"):
            # codes were bought by an earlier attempt, only settlement is left
            return self._complete(order)

        result = self._call_supplier(order)

        # the supplier call may take long, re-read before writing
        order = self.orders.get_order(order_id, fresh=True)

        if not result.is_complete:
            self._record_failure(order, result)
            return order

        if is_terminal(order.status, order.payment_status):
            self._quarantine_codes(order, result)
            return order

        self._store_codes(order, result, requires_reveal=_debit_state(order) == WalletDebitState.RESERVED)
        return self._complete(order)

    def retry_delivery(self, tenant_id: str, order_id: str, user_id: str | None = None) -> OrderModel:
        order = self._get_owned_order(tenant_id, order_id, user_id)

        if is_terminal(order.status, order.payment_status):
            raise ConflictError(f"Order {order.order_number} is {order.status} and cannot be delivered")

        files = order.delivery_files or {}
        if order.status == OrderStatus.DELIVERED.value and not files.get("requires_reveal"):
            raise ConflictError(f"Order {order.order_number} is already delivered")

        paid = order.payment_status == PaymentStatus.SUCCEEDED.value
        if not order.has_instant_items or not (paid or _debit_state(order) == WalletDebitState.RESERVED):
            raise ConflictError(f"Order {order.order_number} is not eligible for delivery retry")

        logger.info(f"Retrying delivery for order {order.id} (attempts so far: {order.delivery_attempts})")
        return self.fulfill(order.id)

    def reveal(self, tenant_id: str, order_id: str, user_id: str) -> OrderModel:
        """Customer-triggered settlement of a masked delivery, e.g. after a top-up."""
        order = self._get_owned_order(tenant_id, order_id, user_id)

        files = order.delivery_files or {}
        if not files.get("requires_reveal"):
            return order
        if not files.get("serial_numbers"):
            raise ConflictError(f"Order {order.order_number} has no delivered codes yet")

        order = self._complete(order)
        if (order.delivery_files or {}).get("requires_reveal"):
            raise InsufficientBalanceError(
                "Insufficient wallet balance. Top up your wallet to reveal the codes."
            )
        return order

    def _get_owned_order(self, tenant_id: str, order_id: str, user_id: str | None) -> OrderModel:
        order = self.orders.get_tenant_order(tenant_id, order_id, fresh=True)
        if not order:
            raise NotFoundError("Order", order_id)
        if user_id and (order.settlement is None or order.settlement.payer_id != user_id):
            raise ForbiddenError("No access to this order")
        return order

    def _call_supplier(self, order: OrderModel) -> DeliveryResult:
        settlement = order.settlement
        options = (order.delivery_files or {}).get("delivery_options")
        items = [
            DeliveryItem(
                product_id=item.product_id,
                product_name=item.product_name,
                product_code=item.product_code,
                quantity=item.quantity,
                price=float(item.price),
                position=item.position,
                sku=item.sku,
            )
            for item in order.items
            if item.is_instant
        ]
        try:
            return self.delivery.process_digital_cards_delivery(
                tenant_id=order.tenant_id,
                order_id=order.id,
                payer_id=settlement.payer_id if settlement else None,
                items=items,
                delivery_options=options,
                customer_email=order.customer_email,
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                order_number=order.order_number,
            )
        except (ExternalServiceError, requests.RequestException) as e:
            logger.error(f"Digital delivery for order {order.id} failed: {e}")
            return DeliveryResult(
                delivery_options=list(options or []),
                error=f"Digital delivery failed: {e}",
                error_ar=f"فشل تسليم البطاقات الرقمية: {e}",
            )

    def _record_failure(self, order: OrderModel, result: DeliveryResult):
        files = dict(order.delivery_files or {})
        files["error"] = result.error or "Digital delivery returned no codes"
        files["error_ar"] = result.error_ar or "لم يتم استلام أي أكواد من المورد"
        order.delivery_files = files
        order.delivery_attempts = (order.delivery_attempts or 0) + 1
        self.db.commit()
        logger.warning(f"Order {order.id} delivery attempt {order.delivery_attempts} failed: {files['error']}")

    def _store_codes(self, order: OrderModel, result: DeliveryResult, requires_reveal: bool):
        files = dict(order.delivery_files or {})
        files.update(
            {
                "serial_numbers": result.serial_numbers,
                "serial_numbers_by_product": result.serial_numbers_by_product,
                "delivery_options": result.delivery_options,
                "export_artifacts": result.export_artifacts,
                "error": None,
                "error_ar": None,
                "requires_reveal": requires_reveal,
            }
        )
        order.delivery_files = files
        order.delivery_attempts = (order.delivery_attempts or 0) + 1
        self.db.commit()
        logger.info(f"Stored {len(result.serial_numbers)} codes on order {order.id} (masked={requires_reveal})")

    def _quarantine_codes(self, order: OrderModel, result: DeliveryResult):
        """Codes bought for an order closed meanwhile go to manual review."""
        try:
            files = dict(order.delivery_files or {})
            files.update(
                {
                    "serial_numbers": result.serial_numbers,
                    "serial_numbers_by_product": result.serial_numbers_by_product,
                    "requires_reveal": True,
                }
            )
            order.delivery_files = files
            # variants of one product share an entry
            names_by_product = {item.product_id: item.product_name for item in order.items if item.is_instant}
            self.emergency.upsert_emergency_items(
                order.tenant_id,
                [
                    {
                        "product_id": product_id,
                        "reason": EmergencyReason.REFUND_RETURNED.value,
                        "notes": f"Order {order.order_number} closed during delivery, codes: "
                        + ", ".join(u["serial_number"] for u in result.serial_numbers_by_product.get(name, [])),
                    }
                    for product_id, name in names_by_product.items()
                ],
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.warning(f"Order {order.id} became {order.status} during delivery, codes queued for review")

    def _complete(self, order: OrderModel) -> OrderModel:
        state = _debit_state(order)
        if state == WalletDebitState.RESERVED:
            if not self.reconciler.settle(order):
                self._notify_customer(
                    order,
                    {"en": "Top up to reveal your codes", "ar": "اشحن محفظتك لعرض الأكواد"},
                    {
                        "en": f"Your codes for order {order.order_number} are ready. Top up your wallet to reveal them.",
                        "ar": f"أكواد طلبك {order.order_number} جاهزة. اشحن محفظتك لعرضها.",
                    },
                )
                return self.orders.get_order(order.id, fresh=True)
            order = self.orders.get_order(order.id, fresh=True)

        if order.payment_status != PaymentStatus.SUCCEEDED.value:
            return order

        changed = False
        files = dict(order.delivery_files or {})
        if files.get("requires_reveal"):
            files["requires_reveal"] = False
            order.delivery_files = files
            changed = True
        if order.status != OrderStatus.DELIVERED.value and can_transition_order(order.status, OrderStatus.DELIVERED):
            order.status = OrderStatus.DELIVERED.value
            changed = True
        if changed:
            self.db.commit()
            logger.info(f"Order {order.id} delivered")
            self._notify_customer(
                order,
                {"en": "Your order is delivered", "ar": "تم تسليم طلبك"},
                {
                    "en": f"Codes for order {order.order_number} are available.",
                    "ar": f"أكواد الطلب {order.order_number} متاحة الآن.",
                },
            )
        return order

    def _notify_customer(self, order: OrderModel, title: dict, body: dict):
        if self.notifier is None:
            return
        self.notifier.send_notification(
            tenant_id=order.tenant_id,
            audience="customer",
            title=title,
            body=body,
            data={"order_id": order.id, "order_number": order.order_number},
            user_id=order.settlement.payer_id if order.settlement else None,
            target_email=order.customer_email,
        )
