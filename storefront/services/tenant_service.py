# storefront/services/tenant_service.py
import re

from sqlalchemy.orm import Session

from storefront.data.models.tenant import TenantModel
from storefront.domain.errors import ValidationError
from storefront.repos.tenant_repo import TenantRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TENANT_SETTINGS = {
    "order_auto_accept": True,
    "tax_rate": "0",
    "shipping_flat_rate": "0",
}


class TenantService:
    def __init__(self, db: Session):
        self.repo = TenantRepo(db)

    def get_tenant(self, tenant_id: str) -> TenantModel | None:
        return self.repo.get_tenant(tenant_id)

    def ensure_tenant(self, tenant_id: str, subdomain: str | None = None) -> TenantModel:
        """Return the tenant, provisioning a minimal store when it is missing."""
        tenant = self.repo.get_tenant(tenant_id)
        if tenant:
            return tenant

        candidate = subdomain or re.sub(r"[^a-z0-9]", "", tenant_id[:20].lower())
        if not candidate:
            raise ValidationError("Store setup error: unable to verify store.")
        if self.repo.subdomain_taken(candidate):
            candidate = f"{candidate}-{tenant_id[:8].lower()}"

        created = self.repo.create_tenant(
            TenantModel(
                id=tenant_id,
                name=f"Store {tenant_id[:8]}",
                subdomain=candidate,
                settings=dict(DEFAULT_TENANT_SETTINGS),
            )
        )
        logger.info(f"Tenant {tenant_id} provisioned with subdomain={candidate}")
        return created


def order_auto_accept(tenant: TenantModel | None) -> bool:
    settings = (tenant.settings if tenant else None) or {}
    value = settings.get("order_auto_accept")
    return True if value is None else bool(value)
