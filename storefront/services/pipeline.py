# storefront/services/pipeline.py
from dataclasses import dataclass

from sqlalchemy.orm import Session

from storefront.services.cart_service import CartService
from storefront.services.compensation_service import CompensationService
from storefront.services.digital_delivery_service import DigitalCardsDeliveryService
from storefront.services.emergency_inventory_service import EmergencyInventoryService
from storefront.services.fulfillment_service import FulfillmentOrchestrator, SettlementReconciler
from storefront.services.inventory_service import AutoReplenishPolicy, InventoryService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_webhook_service import PaymentWebhookService
from storefront.services.supplier_client import SupplierHubClient
from storefront.services.supplier_inventory_service import SupplierInventoryService
from storefront.services.tenant_service import TenantService
from storefront.services.wallet_service import WalletService
from storefront.utils.settings import PipelineConfig


@dataclass
class Pipeline:
    config: PipelineConfig
    carts: CartService
    tenants: TenantService
    wallet: WalletService
    inventory: InventoryService
    emergency: EmergencyInventoryService
    fulfillment: FulfillmentOrchestrator
    orders: OrderService
    compensation: CompensationService
    webhooks: PaymentWebhookService


def build_pipeline(
    db: Session,
    config: PipelineConfig,
    supplier_client: SupplierHubClient,
    locks: LockService,
    notifier: NotificationService,
    webhook_secret: str = "",
) -> Pipeline:
    """Wire every order pipeline service around one session."""
    replenish = None
    if config.auto_replenish_tenants:
        replenish = AutoReplenishPolicy(config.auto_replenish_tenants, config.auto_replenish_level)

    carts = CartService(db)
    tenants = TenantService(db)
    wallet = WalletService(db, config)
    inventory = InventoryService(db, replenish_policy=replenish)
    emergency = EmergencyInventoryService(db)
    fulfillment = FulfillmentOrchestrator(
        db,
        DigitalCardsDeliveryService(supplier_client, currency=config.currency),
        SettlementReconciler(db, wallet),
        emergency,
        notifier,
    )
    orders = OrderService(
        db,
        config=config,
        cart_service=carts,
        tenant_service=tenants,
        supplier_inventory=SupplierInventoryService(db, supplier_client),
        inventory_service=inventory,
        wallet_service=wallet,
        fulfillment=fulfillment,
        notifier=notifier,
        locks=locks,
    )
    return Pipeline(
        config=config,
        carts=carts,
        tenants=tenants,
        wallet=wallet,
        inventory=inventory,
        emergency=emergency,
        fulfillment=fulfillment,
        orders=orders,
        compensation=CompensationService(db, inventory, wallet, emergency, notifier),
        webhooks=PaymentWebhookService(db, fulfillment, webhook_secret),
    )
