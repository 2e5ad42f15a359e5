from sqlalchemy.orm import Session

from storefront.data.models.tenant import TenantModel


class TenantRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_tenant(self, tenant_id: str) -> TenantModel | None:
        return self.db.get(TenantModel, tenant_id)

    def subdomain_taken(self, subdomain: str) -> bool:
        return (
            self.db.query(TenantModel.id)
            .filter(TenantModel.subdomain == subdomain)
            .first()
            is not None
        )

    def create_tenant(self, tenant: TenantModel) -> TenantModel:
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)
        return tenant
