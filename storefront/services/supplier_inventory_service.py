# storefront/services/supplier_inventory_service.py
import requests
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.repos.product_repo import ProductRepo
from storefront.services.supplier_client import SupplierHubClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class SupplierInventoryService:
    """
    Pre-order availability check for variant lines. A line that is short on
    local stock may still pass if the supplier catalog carries the product;
    the matched code is written onto the product so the order pipeline
    treats it as externally fulfilled.
    """

    def __init__(self, db: Session, client: SupplierHubClient | None = None):
        self.db = db
        self.repo = ProductRepo(db)
        self.client = client or SupplierHubClient()

    def validate_inventory_before_order(self, tenant_id: str, items: list[dict]) -> bool:
        logger.info(f"Validating inventory for {len(items)} items, tenant {tenant_id}")

        for item in items:
            if not item.get("variant_id"):
                continue

            variant = self.repo.get_variant_for_tenant(tenant_id, item["variant_id"])
            if not variant:
                logger.error(f"Variant {item['variant_id']} not found for product {item.get('product_id')}")
                return False

            product = variant.product
            if product.is_instant:
                continue

            if variant.inventory_quantity >= item["quantity"]:
                continue

            logger.warning(
                f"Insufficient inventory for variant {variant.id} ({product.name}): "
                f"requested {item['quantity']}, available {variant.inventory_quantity}"
            )
            if not self._sync_product_code(product):
                return False

        return True

    def _sync_product_code(self, product: ProductModel) -> bool:
        code = self.find_catalog_match(product)
        if not code:
            return False
        product.product_code = code
        self.db.commit()
        logger.info(f"Product {product.id} matched supplier code {code}")
        return True

    def find_catalog_match(self, product: ProductModel) -> str | None:
        query = product.sku or product.name
        try:
            candidates = self.client.search_products(query)
        except requests.RequestException as e:
            logger.warning(f"Supplier catalog search failed for {query}: {e}")
            return None

        wanted = {v.strip().lower() for v in (product.sku, product.name) if v}
        for candidate in candidates:
            if not candidate.get("available", True):
                continue
            names = {str(candidate.get(k, "")).strip().lower() for k in ("product_code", "name")}
            if wanted & names:
                return candidate.get("product_code")
        return None
