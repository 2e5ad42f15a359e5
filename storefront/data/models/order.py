from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Boolean, JSON, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.models._ids import new_id, utcnow


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    order_number = Column(String(32), nullable=False, unique=True)

    customer_email = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    is_guest = Column(Boolean, nullable=False, default=False)
    guest_email = Column(String, nullable=True)
    guest_name = Column(String, nullable=True)
    guest_phone = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    status = Column(String(16), nullable=False, default="PENDING")
    payment_status = Column(String(16), nullable=False, default="PENDING")

    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)
    delivery_files = Column(JSON, nullable=False, default=dict)
    delivery_attempts = Column(Integer, nullable=False, default=0)

    rejection_reason = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )
    settlement = relationship(
        "SettlementModel",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def has_instant_items(self) -> bool:
        return any(item.is_instant for item in self.items)


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    variant_id = Column(String(36), ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(String, nullable=False)
    variant_name = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    product_code = Column(String, nullable=True)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    is_instant = Column(Boolean, nullable=False, default=False)
    stock_reserved = Column(Boolean, nullable=False, default=False)

    order = relationship("OrderModel", back_populates="items")


class SettlementModel(Base):
    """Internal payment markers of an order, kept apart from address data."""

    __tablename__ = "order_settlements"

    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    payment_method = Column(String(32), nullable=True)
    payer_id = Column(String, nullable=True, index=True)
    wallet_debit_state = Column(String(16), nullable=False, default="NOT_APPLICABLE")
    reserved_amount = Column(Numeric(12, 2), nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    order = relationship("OrderModel", back_populates="settlement")
