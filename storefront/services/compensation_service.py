# storefront/services/compensation_service.py
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import ConflictError, NotFoundError
from storefront.domain.statuses import (
    EmergencyReason,
    OrderStatus,
    PaymentStatus,
    WalletDebitState,
    TransactionType,
    ensure_debit_transition,
    ensure_order_transition,
    ensure_payment_transition,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.emergency_inventory_service import EmergencyInventoryService
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import NotificationService
from storefront.services.wallet_service import WalletService
from storefront.utils.money import to_decimal
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CompensationService:
    """
    Cancel, reject and refund. Each runs as one transaction that reverses
    the order's inventory and wallet effects as far as its state requires.
    """

    def __init__(
        self,
        db: Session,
        inventory_service: InventoryService,
        wallet_service: WalletService,
        emergency_service: EmergencyInventoryService,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.inventory = inventory_service
        self.wallet = wallet_service
        self.emergency = emergency_service
        self.notifier = notifier

    def cancel_order(self, tenant_id: str, order_id: str, reason: str | None = None) -> OrderModel:
        order = self._load(tenant_id, order_id)
        if order.status not in (OrderStatus.PENDING.value, OrderStatus.APPROVED.value):
            raise ConflictError(f"Order {order.order_number} is {order.status} and cannot be cancelled")

        try:
            ensure_order_transition(order.status, OrderStatus.CANCELLED)
            restored = self.inventory.release(order.items)

            state = self._debit_state(order)
            if state == WalletDebitState.RESERVED:
                self._move_settlement(order, WalletDebitState.RESERVED, WalletDebitState.RELEASED)
            elif state == WalletDebitState.CHARGED:
                self._credit_back(order, "Cancellation")

            self._queue_delivered_codes(order, "cancelled")
            order.status = OrderStatus.CANCELLED.value
            if reason:
                order.notes = f"{order.notes}\nCancelled: {reason}" if order.notes else f"Cancelled: {reason}"
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} cancelled, {restored} stock lines restored")
        self._notify(
            order,
            {"en": "Order cancelled", "ar": "تم إلغاء الطلب"},
            {
                "en": f"Your order {order.order_number} was cancelled.",
                "ar": f"تم إلغاء طلبك {order.order_number}.",
            },
        )
        return self.repo.get_order(order_id, fresh=True)

    def reject_order(self, tenant_id: str, order_id: str, reason: str | None = None) -> OrderModel:
        order = self._load(tenant_id, order_id)
        if order.status != OrderStatus.PENDING.value:
            raise ConflictError(f"Only pending orders can be rejected (order is {order.status})")

        try:
            ensure_order_transition(order.status, OrderStatus.REJECTED)
            if self._debit_state(order) == WalletDebitState.RESERVED:
                self._move_settlement(order, WalletDebitState.RESERVED, WalletDebitState.RELEASED)

            order.status = OrderStatus.REJECTED.value
            order.rejection_reason = reason or "Rejected by the store"
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} rejected: {order.rejection_reason}")
        self._notify(
            order,
            {"en": "Order rejected", "ar": "تم رفض الطلب"},
            {
                "en": f"Your order {order.order_number} was rejected: {order.rejection_reason}",
                "ar": f"تم رفض طلبك {order.order_number}: {order.rejection_reason}",
            },
        )
        return self.repo.get_order(order_id, fresh=True)

    def refund_order(self, tenant_id: str, order_id: str, reason: str | None = None) -> OrderModel:
        order = self._load(tenant_id, order_id)
        if order.status == OrderStatus.REFUNDED.value or order.payment_status == PaymentStatus.REFUNDED.value:
            raise ConflictError(f"Order {order.order_number} is already refunded")

        try:
            ensure_order_transition(order.status, OrderStatus.REFUNDED)
            ensure_payment_transition(order.payment_status, PaymentStatus.REFUNDED)

            state = self._debit_state(order)
            if self.wallet.find_purchase(order.id) is not None:
                self._credit_back(order, "Refund")
            elif state == WalletDebitState.RESERVED:
                self._move_settlement(order, WalletDebitState.RESERVED, WalletDebitState.RELEASED)

            queued = self._queue_delivered_codes(order, "refunded")
            order.status = OrderStatus.REFUNDED.value
            order.payment_status = PaymentStatus.REFUNDED.value
            if reason:
                order.notes = f"{order.notes}\nRefunded: {reason}" if order.notes else f"Refunded: {reason}"
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} refunded, {queued} products queued to emergency inventory")
        self._notify(
            order,
            {"en": "Order refunded", "ar": "تم استرداد الطلب"},
            {
                "en": f"Your order {order.order_number} was refunded.",
                "ar": f"تم استرداد مبلغ طلبك {order.order_number}.",
            },
        )
        return self.repo.get_order(order_id, fresh=True)

    def _load(self, tenant_id: str, order_id: str) -> OrderModel:
        order = self.repo.get_tenant_order(tenant_id, order_id, fresh=True)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def _debit_state(order: OrderModel) -> WalletDebitState:
        if order.settlement is None:
            return WalletDebitState.NOT_APPLICABLE
        return WalletDebitState(order.settlement.wallet_debit_state)

    def _move_settlement(self, order: OrderModel, from_state: WalletDebitState, to_state: WalletDebitState):
        ensure_debit_transition(from_state, to_state)
        settlement = order.settlement
        if self.repo.transition_settlement(order.id, from_state.value, to_state.value, settlement.version) == 0:
            raise ConflictError(f"Settlement of order {order.order_number} changed concurrently, please retry")

    def _credit_back(self, order: OrderModel, label: str):
        """Mirror the order's PURCHASE entry with a REFUND entry of the same amount."""
        purchase = self.wallet.find_purchase(order.id)
        if purchase is None:
            raise ConflictError(f"No wallet payment recorded for order {order.order_number}")

        self._move_settlement(order, WalletDebitState.CHARGED, WalletDebitState.REFUNDED)
        amount = -to_decimal(purchase.amount)
        self.wallet.credit(
            order.settlement.payer_id,
            amount,
            description=f"{label} for order {order.order_number}",
            description_ar=f"استرداد للطلب {order.order_number}",
            reference=order.id,
            tx_type=TransactionType.REFUND,
            commit=False,
        )
        ensure_payment_transition(order.payment_status, PaymentStatus.REFUNDED)
        order.payment_status = PaymentStatus.REFUNDED.value
        logger.info(f"Credited {amount} back to {order.settlement.payer_id} for order {order.id}")

    def _queue_delivered_codes(self, order: OrderModel, verb: str) -> int:
        by_product = (order.delivery_files or {}).get("serial_numbers_by_product") or {}
        items = []
        seen = set()
        for item in order.items:
            units = by_product.get(item.product_name)
            if not item.is_instant or not units or item.product_id in seen:
                continue
            seen.add(item.product_id)
            codes = ", ".join(unit["serial_number"] for unit in units)
            items.append(
                {
                    "product_id": item.product_id,
                    "reason": EmergencyReason.REFUND_RETURNED.value,
                    "notes": f"Order {order.order_number} {verb}, delivered codes to review: {codes}",
                }
            )
        if not items:
            return 0
        return self.emergency.upsert_emergency_items(order.tenant_id, items, commit=False)

    def _notify(self, order: OrderModel, title: dict, body: dict):
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
