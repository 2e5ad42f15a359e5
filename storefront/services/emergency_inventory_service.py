# storefront/services/emergency_inventory_service.py
from sqlalchemy.orm import Session

from storefront.data.models.emergency_inventory import EmergencyInventoryModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.statuses import EmergencyReason
from storefront.repos.emergency_repo import EmergencyInventoryRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.money import to_decimal
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class EmergencyInventoryService:
    """
    Operational watch-list of products that need manual stock or pricing
    attention. One entry per (tenant, product); re-adding updates it.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = EmergencyInventoryRepo(db)
        self.products = ProductRepo(db)

    def upsert_emergency_items(self, tenant_id: str, items: list[dict], commit: bool = True) -> int:
        """
        ``items``: ``[{"product_id", "reason", "notes"}]``. Notes of an existing
        entry are kept and the new notes appended.
        """
        touched = 0
        for item in items:
            reason = EmergencyReason(item.get("reason", EmergencyReason.MANUAL.value))
            notes = item.get("notes")

            entry = self.repo.get_entry(tenant_id, item["product_id"])
            if entry:
                entry.reason = reason.value
                if notes:
                    entry.notes = f"{entry.notes}\n{notes}" if entry.notes else notes
            else:
                self.repo.add_entry(
                    EmergencyInventoryModel(
                        tenant_id=tenant_id,
                        product_id=item["product_id"],
                        reason=reason.value,
                        notes=notes,
                    )
                )
            touched += 1

        self.db.flush()
        if commit:
            self.db.commit()
        logger.info(f"Emergency inventory: {touched} entries upserted for tenant {tenant_id}")
        return touched

    def list_items(self, tenant_id: str, page: int = 1, limit: int = 20, search: str | None = None) -> dict:
        if limit <= 0:
            raise ValidationError("Limit must be greater than 0")
        page = max(page, 1)
        rows, total = self.repo.list_entries(tenant_id, (page - 1) * limit, limit, search)
        return {
            "data": rows,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }

    def remove_item(self, tenant_id: str, product_id: str):
        entry = self.repo.get_entry(tenant_id, product_id)
        if not entry:
            raise NotFoundError("Emergency inventory entry", product_id)
        self.repo.delete_entry(entry)
        self.db.commit()
        logger.info(f"Emergency inventory entry for product {product_id} removed (tenant {tenant_id})")

    def auto_add_cost_gt_price(self, tenant_id: str) -> int:
        """Flag every product whose unit cost exceeds its selling price."""
        items = [
            {
                "product_id": product.id,
                "reason": EmergencyReason.COST_GT_PRICE.value,
                "notes": f"Auto-added: cost ({product.cost_per_item}) > price ({product.price})",
            }
            for product in self.products.list_with_cost(tenant_id)
            if to_decimal(product.cost_per_item) > to_decimal(product.price)
        ]
        if not items:
            return 0
        return self.upsert_emergency_items(tenant_id, items)

    def auto_add_needed(self, tenant_id: str) -> int:
        items = [
            {
                "product_id": product.id,
                "reason": EmergencyReason.NEEDED.value,
                "notes": "Auto-added: product marked as needed",
            }
            for product in self.products.list_needed(tenant_id)
            if not self.repo.get_entry(tenant_id, product.id)
        ]
        if not items:
            return 0
        return self.upsert_emergency_items(tenant_id, items)
