# storefront/services/order_service.py
import random
import time
from contextlib import nullcontext

from sqlalchemy.orm import Session

from storefront.data.models._ids import utcnow
from storefront.data.models.order import OrderModel, OrderItemModel, SettlementModel
from storefront.domain.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.domain.schemas import CreateOrderIn
from storefront.domain.statuses import (
    OrderStatus,
    PaymentStatus,
    WalletDebitState,
    ensure_debit_transition,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_service import CartService
from storefront.services.fulfillment_service import FulfillmentOrchestrator
from storefront.services.inventory_service import InventoryService, ReservationLine
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.supplier_inventory_service import SupplierInventoryService
from storefront.services.tenant_service import TenantService, order_auto_accept
from storefront.services.wallet_service import WalletService
from storefront.utils.money import round_money
from storefront.utils.settings import PipelineConfig
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

WALLET_METHOD = "WALLET_BALANCE"
MASKED_SERIAL = "********"
MASKED_PIN = "****"


def is_cash_on_delivery(payment_method: str | None) -> bool:
    method = (payment_method or "").upper()
    return "CASH" in method or "COD" in method


def wants_wallet(data: CreateOrderIn) -> bool:
    return data.use_wallet_balance or (data.payment_method or "").upper() == WALLET_METHOD


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"


def mask_delivery_files(files: dict | None) -> dict:
    """Customer-facing view of delivery data: codes hidden until settled."""
    files = dict(files or {})
    if not files.get("requires_reveal"):
        return files

    files["serial_numbers"] = [MASKED_SERIAL for _ in files.get("serial_numbers") or []]
    files["serial_numbers_by_product"] = {
        name: [
            {"serial_number": MASKED_SERIAL, "pin": MASKED_PIN if unit.get("pin") else None}
            for unit in units
        ]
        for name, units in (files.get("serial_numbers_by_product") or {}).items()
    }
    files["export_artifacts"] = {}
    return files


def serialize_order(order: OrderModel) -> dict:
    settlement = order.settlement
    return {
        "id": order.id,
        "tenant_id": order.tenant_id,
        "order_number": order.order_number,
        "customer_email": order.customer_email,
        "customer_name": order.customer_name,
        "is_guest": order.is_guest,
        "subtotal": order.subtotal,
        "discount": order.discount,
        "tax": order.tax,
        "shipping": order.shipping,
        "total": order.total,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": settlement.payment_method if settlement else None,
        "delivery_files": mask_delivery_files(order.delivery_files),
        "delivery_attempts": order.delivery_attempts or 0,
        "rejection_reason": order.rejection_reason,
        "paid_at": order.paid_at,
        "created_at": order.created_at,
        "items": [
            {
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "product_name": item.product_name,
                "variant_name": item.variant_name,
                "quantity": item.quantity,
                "price": item.price,
                "is_instant": item.is_instant,
            }
            for item in order.items
        ],
    }


class OrderService:
    """
    Turns a cart into an order.

    Stock reservation, the immediate wallet debit, the order rows and the
    cart cleanup share one transaction. Digital delivery and notifications
    run after it commits, so their failures never undo the order.
    """

    def __init__(
        self,
        db: Session,
        config: PipelineConfig,
        cart_service: CartService,
        tenant_service: TenantService,
        supplier_inventory: SupplierInventoryService,
        inventory_service: InventoryService,
        wallet_service: WalletService,
        fulfillment: FulfillmentOrchestrator,
        notifier: NotificationService,
        locks: LockService,
    ):
        self.db = db
        self.config = config
        self.repo = OrderRepo(db)
        self.carts = cart_service
        self.tenants = tenant_service
        self.supplier_inventory = supplier_inventory
        self.inventory = inventory_service
        self.wallet = wallet_service
        self.fulfillment = fulfillment
        self.notifier = notifier
        self.locks = locks

    def create_order(
        self,
        tenant_id: str,
        data: CreateOrderIn,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> OrderModel:
        """
        Use case: place an order from a cart.

        1. Resolves (or provisions) the tenant
        2. Validates the cart and supplier availability
        3. Prices the cart and classifies it (instant goods, COD, wallet)
        4. Reserves stock, charges or reserves the wallet, writes the order
        5. Delivers digital goods and notifies, outside the transaction
        """
        tenant = self.tenants.ensure_tenant(tenant_id)
        if tenant.is_private_store and not user_id:
            raise ForbiddenError("This store is private. Please sign in to place an order.")

        cart = self.carts.get_cart(tenant_id, data.cart_id)
        if not cart:
            raise NotFoundError("Cart", data.cart_id)
        if cart.user_id and cart.user_id != user_id:
            raise ForbiddenError("No access to this cart")
        if not cart.items:
            raise ValidationError("Cart is empty")

        check_items = [
            {"product_id": i.product_id, "variant_id": i.variant_id, "quantity": i.quantity}
            for i in cart.items
        ]
        if not self.supplier_inventory.validate_inventory_before_order(tenant_id, check_items):
            raise ConflictError("Insufficient inventory. Please check product availability.")

        # supplier sync may have written product codes
        cart = self.carts.get_cart(tenant_id, data.cart_id, fresh=True)
        if not cart or not cart.items:
            raise ValidationError("Cart is empty")

        totals = self.carts.calculate_cart_total(cart, data.shipping_address)
        total = round_money(totals.subtotal - totals.discount + totals.tax + totals.shipping)
        if total <= 0:
            raise ValidationError("Order total must be greater than 0")

        has_instant = any(item.product.is_instant for item in cart.items)
        if has_instant and is_cash_on_delivery(data.payment_method):
            raise ValidationError("Cash on delivery is not available for digital products")

        use_wallet = wants_wallet(data)
        if use_wallet and not user_id:
            raise ForbiddenError("Sign in to pay with your wallet balance")
        deferred = use_wallet and has_instant

        lock = self.locks.payer_lock(user_id, self.config.payer_lock_ttl) if use_wallet else nullcontext()
        with lock:
            if use_wallet:
                available = self.wallet.available_balance(user_id)
                if available + self.config.balance_epsilon < total:
                    raise InsufficientBalanceError(
                        f"Insufficient wallet balance. Available: {available}, Required: {total}"
                    )
            order = self._write_order(tenant, data, user_id, ip_address, totals, total, use_wallet, deferred)

        logger.info(
            f"Order {order.order_number} created: tenant={tenant_id} total={total} "
            f"status={order.status} payment={order.payment_status} deferred={deferred}"
        )

        if has_instant and (order.payment_status == PaymentStatus.SUCCEEDED.value or deferred):
            try:
                order = self.fulfillment.fulfill(order.id)
            except StorefrontError as e:
                # the order is durable and stays retryable
                self.db.rollback()
                logger.error(f"Fulfillment after creating order {order.id} failed: {e}")

        self._notify_created(order)
        return self.repo.get_order(order.id, fresh=True)

    def _write_order(self, tenant, data, user_id, ip_address, totals, total, use_wallet, deferred) -> OrderModel:
        try:
            cart = self.carts.get_cart(tenant.id, data.cart_id, fresh=True)
            if not cart or not cart.items:
                raise ConflictError("Cart changed while placing the order, please retry")

            lines = [ReservationLine(i.product_id, i.variant_id, i.quantity) for i in cart.items]
            reserved_flags = self.inventory.reserve(tenant.id, lines)

            if use_wallet:
                debit_state = WalletDebitState.RESERVED if deferred else WalletDebitState.CHARGED
                ensure_debit_transition(WalletDebitState.UNCHARGED, debit_state)
            else:
                debit_state = WalletDebitState.NOT_APPLICABLE

            options = data.delivery_options or list(
                self.config.default_delivery_options_user if user_id
                else self.config.default_delivery_options_guest
            )
            status = OrderStatus.APPROVED if order_auto_accept(tenant) else OrderStatus.PENDING
            is_guest = user_id is None

            order = OrderModel(
                tenant_id=tenant.id,
                order_number=self._unique_order_number(),
                customer_email=data.customer_email,
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                is_guest=is_guest,
                guest_email=data.customer_email if is_guest else None,
                guest_name=data.customer_name if is_guest else None,
                guest_phone=data.customer_phone if is_guest else None,
                ip_address=ip_address,
                notes=data.notes,
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax=totals.tax,
                shipping=totals.shipping,
                total=total,
                status=status.value,
                payment_status=PaymentStatus.PENDING.value,
                shipping_address=data.shipping_address,
                billing_address=data.billing_address,
                delivery_files={"delivery_options": options, "requires_reveal": deferred},
                delivery_attempts=0,
            )
            order.items = [
                OrderItemModel(
                    position=pos,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    product_name=item.product.name,
                    variant_name=item.variant.name if item.variant else None,
                    sku=item.product.sku,
                    product_code=item.product.product_code,
                    quantity=item.quantity,
                    price=item.price,
                    is_instant=item.product.is_instant,
                    stock_reserved=flag,
                )
                for pos, (item, flag) in enumerate(zip(cart.items, reserved_flags))
            ]
            order.settlement = SettlementModel(
                payment_method=data.payment_method or (WALLET_METHOD if use_wallet else None),
                payer_id=user_id,
                wallet_debit_state=debit_state.value,
                reserved_amount=total if deferred else 0,
            )
            self.repo.add_order(order)

            if use_wallet and not deferred:
                self.wallet.debit(
                    user_id,
                    total,
                    description=f"Payment for order {order.order_number}",
                    description_ar=f"دفع للطلب {order.order_number}",
                    reference=order.id,
                    commit=False,
                )
                order.payment_status = PaymentStatus.SUCCEEDED.value
                order.paid_at = utcnow()

            self.carts.clear_cart(tenant.id, cart.id, commit=False)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.repo.get_order(order.id, fresh=True)

    def _unique_order_number(self) -> str:
        for _ in range(5):
            number = generate_order_number()
            if not self.repo.order_number_exists(number):
                return number
        raise ConflictError("Could not allocate an order number, please retry")

    def _notify_created(self, order: OrderModel):
        data = {"order_id": order.id, "order_number": order.order_number}
        self.notifier.send_notification(
            tenant_id=order.tenant_id,
            audience="merchant",
            title={"en": "New order", "ar": "طلب جديد"},
            body={
                "en": f"Order {order.order_number} was placed for {order.total}.",
                "ar": f"تم إنشاء الطلب {order.order_number} بقيمة {order.total}.",
            },
            data=data,
        )
        self.notifier.send_notification(
            tenant_id=order.tenant_id,
            audience="customer",
            title={"en": "Order received", "ar": "تم استلام طلبك"},
            body={
                "en": f"Thank you! Your order {order.order_number} was received.",
                "ar": f"شكراً لك! تم استلام طلبك {order.order_number}.",
            },
            data=data,
            user_id=order.settlement.payer_id if order.settlement else None,
            target_email=order.customer_email,
        )

    # queries
    def get_order(self, tenant_id: str, order_id: str, user_id: str | None = None) -> OrderModel:
        order = self.repo.get_tenant_order(tenant_id, order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        if user_id and (order.settlement is None or order.settlement.payer_id != user_id):
            raise ForbiddenError("No access to this order")
        return order

    def list_orders(
        self,
        tenant_id: str,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
        customer_email: str | None = None,
        user_id: str | None = None,
    ) -> dict:
        if status and status not in OrderStatus.__members__:
            raise ValidationError(f"Unknown order status: {status}")
        return self._page(tenant_id, page, limit, status=status, customer_email=customer_email, user_id=user_id)

    def search_orders(self, tenant_id: str, query: str, page: int = 1, limit: int = 20) -> dict:
        if not query or not query.strip():
            raise ValidationError("Search query is required")
        return self._page(tenant_id, page, limit, query=query.strip())

    def _page(self, tenant_id: str, page: int, limit: int, **filters) -> dict:
        if limit <= 0:
            raise ValidationError("Limit must be greater than 0")
        page = max(page, 1)
        rows, total = self.repo.list_orders(tenant_id, (page - 1) * limit, limit, **filters)
        return {
            "data": [serialize_order(o) for o in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }
