from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from storefront.data.models.emergency_inventory import EmergencyInventoryModel
from storefront.data.models.product import ProductModel


class EmergencyInventoryRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_entry(self, tenant_id: str, product_id: str) -> EmergencyInventoryModel | None:
        stmt = select(EmergencyInventoryModel).where(
            EmergencyInventoryModel.tenant_id == tenant_id,
            EmergencyInventoryModel.product_id == product_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_entry(self, entry: EmergencyInventoryModel) -> EmergencyInventoryModel:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_entry(self, entry: EmergencyInventoryModel):
        self.db.delete(entry)
        self.db.flush()

    def list_entries(
        self,
        tenant_id: str,
        offset: int,
        limit: int,
        search: str | None = None,
    ) -> tuple[list[EmergencyInventoryModel], int]:
        conditions = [EmergencyInventoryModel.tenant_id == tenant_id]
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                EmergencyInventoryModel.product_id.in_(
                    select(ProductModel.id).where(
                        or_(
                            func.lower(ProductModel.name).like(pattern),
                            func.lower(ProductModel.sku).like(pattern),
                        )
                    )
                )
            )
        total = self.db.execute(
            select(func.count()).select_from(EmergencyInventoryModel).where(*conditions)
        ).scalar_one()
        rows = self.db.execute(
            select(EmergencyInventoryModel)
            .where(*conditions)
            .order_by(EmergencyInventoryModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), total
