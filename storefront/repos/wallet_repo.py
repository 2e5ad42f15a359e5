# storefront/repos/wallet_repo.py
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models.order import SettlementModel
from storefront.data.models.wallet import WalletModel, WalletTransactionModel


class WalletRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_wallet(self, user_id: str, for_update: bool = False) -> WalletModel | None:
        stmt = select(WalletModel).where(WalletModel.user_id == user_id)
        if for_update:
            # fresh read under a row lock, never the value cached earlier in the request
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_wallet(self, wallet: WalletModel) -> WalletModel:
        self.db.add(wallet)
        self.db.flush()
        return wallet

    def last_transaction(self, wallet_id: str) -> WalletTransactionModel | None:
        stmt = (
            select(WalletTransactionModel)
            .where(WalletTransactionModel.wallet_id == wallet_id)
            .order_by(WalletTransactionModel.seq.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_transaction(self, tx: WalletTransactionModel) -> WalletTransactionModel:
        self.db.add(tx)
        self.db.flush()
        return tx

    def find_transaction(self, reference: str, tx_type: str) -> WalletTransactionModel | None:
        stmt = select(WalletTransactionModel).where(
            WalletTransactionModel.reference == reference,
            WalletTransactionModel.type == tx_type,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_transactions(self, wallet_id: str, offset: int, limit: int) -> tuple[list[WalletTransactionModel], int]:
        total = self.db.execute(
            select(func.count())
            .select_from(WalletTransactionModel)
            .where(WalletTransactionModel.wallet_id == wallet_id)
        ).scalar_one()
        rows = self.db.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.wallet_id == wallet_id)
            .order_by(WalletTransactionModel.seq.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), total

    def reserved_total(self, payer_id: str) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(SettlementModel.reserved_amount), 0)).where(
                SettlementModel.payer_id == payer_id,
                SettlementModel.wallet_debit_state == "RESERVED",
            )
        ).scalar_one()
        return Decimal(str(total))
