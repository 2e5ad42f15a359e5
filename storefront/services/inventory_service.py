# storefront/services/inventory_service.py
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderItemModel
from storefront.data.models.product import ProductModel
from storefront.domain.errors import InsufficientInventoryError, NotFoundError
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationLine:
    product_id: str
    variant_id: str | None
    quantity: int


class AutoReplenishPolicy:
    """
    Operational bypass for designated test tenants: a short counter is topped
    up instead of failing the order. Only built when tenants are configured.
    """

    def __init__(self, tenant_ids: Iterable[str], level: int = 9999):
        self.tenant_ids = frozenset(tenant_ids)
        self.level = level

    def applies_to(self, tenant_id: str) -> bool:
        return tenant_id in self.tenant_ids


class InventoryService:
    """
    Local stock reservation. Runs inside the caller's transaction and never
    commits: a crash before the caller commits leaves no partial decrement.
    """

    def __init__(
        self,
        db: Session,
        replenish_policy: AutoReplenishPolicy | None = None,
    ):
        self.repo = ProductRepo(db)
        self.replenish_policy = replenish_policy

    def is_externally_fulfilled(self, product: ProductModel) -> bool:
        # supplier lines carry a product code, see SupplierInventoryService
        return product.is_instant

    def reserve(self, tenant_id: str, lines: list[ReservationLine]) -> list[bool]:
        """
        Decrement stock for every locally fulfilled line.
        Returns, per line, whether stock was actually taken.
        """
        reserved = []
        for line in lines:
            product = self.repo.get_product(line.product_id, for_update=True)
            if not product or product.tenant_id != tenant_id:
                raise NotFoundError("Product", line.product_id)

            if self.is_externally_fulfilled(product):
                reserved.append(False)
                continue

            if line.variant_id:
                self._take_variant(tenant_id, product, line)
            else:
                self._take_product(tenant_id, product, line)
            self.repo.flush()
            reserved.append(True)
        return reserved

    def _take_variant(self, tenant_id: str, product: ProductModel, line: ReservationLine):
        variant = self.repo.get_variant(line.variant_id, for_update=True)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Product variant", line.variant_id)

        if variant.inventory_quantity < line.quantity:
            if not self._replenish(tenant_id, f"{product.name} - {variant.name}"):
                raise InsufficientInventoryError(
                    f"{product.name} - {variant.name}",
                    variant.inventory_quantity,
                    line.quantity,
                )
            variant.inventory_quantity = self.replenish_policy.level

        variant.inventory_quantity -= line.quantity

    def _take_product(self, tenant_id: str, product: ProductModel, line: ReservationLine):
        stock = int(product.stock_count or 0)
        if stock < line.quantity:
            if not self._replenish(tenant_id, product.name):
                raise InsufficientInventoryError(product.name, stock, line.quantity)
            product.stock_count = self.replenish_policy.level

        product.stock_count -= line.quantity

    def _replenish(self, tenant_id: str, label: str) -> bool:
        if self.replenish_policy is None or not self.replenish_policy.applies_to(tenant_id):
            return False
        logger.warning(f"Auto-replenishing inventory for {label} (tenant {tenant_id})")
        return True

    def release(self, items: Iterable[OrderItemModel]) -> int:
        """Put back stock taken by ``reserve``; returns the number of lines restored."""
        restored = 0
        for item in items:
            if not item.stock_reserved:
                continue
            if item.variant_id:
                variant = self.repo.get_variant(item.variant_id, for_update=True)
                if variant:
                    variant.inventory_quantity += item.quantity
                    restored += 1
            else:
                product = self.repo.get_product(item.product_id, for_update=True)
                if product:
                    product.stock_count += item.quantity
                    restored += 1
            self.repo.flush()
        return restored
