# import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.tenant import TenantModel
from storefront.data.models.product import ProductModel, ProductVariantModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel, OrderItemModel, SettlementModel
from storefront.data.models.wallet import WalletModel, WalletTransactionModel
from storefront.data.models.emergency_inventory import EmergencyInventoryModel

__all__ = [
    "TenantModel",
    "ProductModel",
    "ProductVariantModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "SettlementModel",
    "WalletModel",
    "WalletTransactionModel",
    "EmergencyInventoryModel",
]
