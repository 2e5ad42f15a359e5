from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel, ProductVariantModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str, for_update: bool = False) -> ProductModel | None:
        stmt = select(ProductModel).where(ProductModel.id == product_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_variant(self, variant_id: str, for_update: bool = False) -> ProductVariantModel | None:
        stmt = select(ProductVariantModel).where(ProductVariantModel.id == variant_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_variant_for_tenant(self, tenant_id: str, variant_id: str) -> ProductVariantModel | None:
        stmt = (
            select(ProductVariantModel)
            .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
            .where(ProductVariantModel.id == variant_id, ProductModel.tenant_id == tenant_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_with_cost(self, tenant_id: str) -> list[ProductModel]:
        stmt = select(ProductModel).where(
            ProductModel.tenant_id == tenant_id,
            ProductModel.cost_per_item.is_not(None),
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_needed(self, tenant_id: str) -> list[ProductModel]:
        stmt = select(ProductModel).where(
            ProductModel.tenant_id == tenant_id,
            ProductModel.is_needed.is_(True),
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_tenant_ids(self) -> list[str]:
        return list(self.db.execute(select(ProductModel.tenant_id).distinct()).scalars().all())

    def flush(self):
        self.db.flush()
