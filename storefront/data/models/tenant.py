from sqlalchemy import Column, String, Boolean, DateTime, JSON

from storefront.data.database import Base
from storefront.data.models._ids import new_id, utcnow


class TenantModel(Base):
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True)
    is_private_store = Column(Boolean, nullable=False, default=False)
    # order_auto_accept, tax_rate, shipping_flat_rate, currency
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
