from sqlalchemy import Column, Integer, ForeignKey, String, Boolean, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.models._ids import new_id


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    cost_per_item = Column(Numeric(12, 2), nullable=True)
    stock_count = Column(Integer, nullable=False, default=0)

    is_digital = Column(Boolean, nullable=False, default=False)
    product_code = Column(String, nullable=True)  # supplier hub code
    is_needed = Column(Boolean, nullable=False, default=False)

    variants = relationship("ProductVariantModel", back_populates="product", cascade="all, delete-orphan")

    @property
    def has_supplier_code(self) -> bool:
        return bool(self.product_code and self.product_code.strip())

    @property
    def is_instant(self) -> bool:
        return self.has_supplier_code or self.is_digital is True


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    inventory_quantity = Column(Integer, nullable=False, default=0)

    product = relationship("ProductModel", back_populates="variants")
