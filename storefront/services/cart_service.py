# storefront/services/cart_service.py
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import ValidationError, NotFoundError, ForbiddenError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.tenant_repo import TenantRepo
from storefront.utils.money import ZERO, round_money, to_decimal
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


class CartService:
    """
    Cart collaborator of the order pipeline:
    commands (get_or_create, add_item, clear) change state,
    queries (get_cart, calculate_cart_total) only read.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.tenants = TenantRepo(db)

    # queries
    def get_cart(self, tenant_id: str, cart_id: str, fresh: bool = False) -> CartModel | None:
        return self.repo.get_cart(tenant_id, cart_id, fresh=fresh)

    def calculate_cart_total(self, cart: CartModel, shipping_address: dict | None = None) -> CartTotals:
        subtotal = sum(
            (to_decimal(item.price) * item.quantity for item in cart.items),
            Decimal("0.00"),
        )
        discount = min(to_decimal(cart.discount_amount), subtotal)

        tenant = self.tenants.get_tenant(cart.tenant_id)
        settings = (tenant.settings if tenant else None) or {}
        tax_rate = to_decimal(settings.get("tax_rate"))
        tax = (subtotal - discount) * tax_rate

        # digital goods ship nothing
        needs_shipping = shipping_address is not None and any(
            not item.product.is_instant for item in cart.items
        )
        shipping = to_decimal(settings.get("shipping_flat_rate")) if needs_shipping else ZERO

        return CartTotals(
            subtotal=round_money(subtotal),
            discount=round_money(discount),
            tax=round_money(tax),
            shipping=round_money(shipping),
            total=round_money(subtotal - discount + tax + shipping),
        )

    # commands
    def get_or_create_cart(
        self,
        tenant_id: str,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> CartModel:
        if not session_id and not user_id:
            raise ValidationError("A cart needs a session id or a user id")

        existing = self.repo.get_cart_by_owner(tenant_id, session_id=session_id, user_id=user_id)
        if existing:
            return existing

        created = self.repo.create_cart(
            CartModel(tenant_id=tenant_id, session_id=session_id, user_id=user_id)
        )
        logger.info(f"Created cart {created.id} for tenant {tenant_id}")
        return created

    def add_item(
        self,
        tenant_id: str,
        cart_id: str,
        product_id: str,
        quantity: int,
        variant_id: str | None = None,
        user_id: str | None = None,
    ) -> CartModel:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self.repo.get_cart(tenant_id, cart_id)
        if not cart:
            raise NotFoundError("Cart", cart_id)
        if cart.user_id and user_id and cart.user_id != user_id:
            raise ForbiddenError("No access to this cart")

        product = self.products.get_product(product_id)
        if not product or product.tenant_id != tenant_id:
            raise NotFoundError("Product", product_id)

        price = product.price
        if variant_id:
            variant = self.products.get_variant(variant_id)
            if not variant or variant.product_id != product.id:
                raise NotFoundError("Product variant", variant_id)
            price = variant.price

        existing_item = self.repo.get_cart_item(cart_id, product_id, variant_id)
        if existing_item:
            existing_item.quantity += quantity
            existing_item.price = price
        else:
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart_id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    price=price,
                )
            )
        self.repo.commit()

        logger.info(f"Product {product_id} x{quantity} added to cart {cart_id}")
        return self.repo.get_cart(tenant_id, cart_id, fresh=True)

    def clear_cart(self, tenant_id: str, cart_id: str, commit: bool = True) -> int:
        cart = self.repo.get_cart(tenant_id, cart_id)
        if not cart:
            return 0
        removed = self.repo.delete_cart_items(cart_id)
        if commit:
            self.repo.commit()
        # bulk delete bypasses the session, drop stale items from the identity map
        self.repo.db.expire(cart, ["items"])
        return removed
