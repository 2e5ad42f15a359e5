from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.data.models._ids import new_id, utcnow


class WalletModel(Base):
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, unique=True)
    tenant_id = Column(String(64), nullable=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="SAR")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    transactions = relationship("WalletTransactionModel", back_populates="wallet")


class WalletTransactionModel(Base):
    __tablename__ = "wallet_transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    wallet_id = Column(String(36), ForeignKey("wallets.id"), nullable=False, index=True)

    seq = Column(Integer, nullable=False)
    type = Column(String(16), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    description_ar = Column(String, nullable=True)
    reference = Column(String(36), nullable=True, index=True)
    status = Column(String(16), nullable=False, default="COMPLETED")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    wallet = relationship("WalletModel", back_populates="transactions")

    # at most one purchase and one refund per order; seq orders the append-only log
    __table_args__ = (
        UniqueConstraint("reference", "type", name="u_wallet_tx_reference_type"),
        UniqueConstraint("wallet_id", "seq", name="u_wallet_tx_seq"),
    )
