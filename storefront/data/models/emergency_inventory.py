from sqlalchemy import Column, ForeignKey, String, DateTime, Text, UniqueConstraint

from storefront.data.database import Base
from storefront.data.models._ids import new_id, utcnow


class EmergencyInventoryModel(Base):
    __tablename__ = "emergency_inventory"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    reason = Column(String(32), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("tenant_id", "product_id", name="u_emergency_tenant_product"),)
