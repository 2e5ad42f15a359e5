# storefront/services/wallet_service.py
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.wallet import WalletModel, WalletTransactionModel
from storefront.domain.errors import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientBalanceError,
    IntegrityViolationError,
)
from storefront.domain.statuses import TransactionType
from storefront.repos.wallet_repo import WalletRepo
from storefront.utils.money import ZERO, round_money, to_decimal
from storefront.utils.settings import PipelineConfig
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    wallet: WalletModel
    transaction: WalletTransactionModel


class WalletService:
    """
    One balance per customer plus an append-only ledger.

    The balance column and the ledger entry are always written in the same
    transaction. ``debit``/``credit`` commit on their own by default; pass
    ``commit=False`` to take part in a caller's transaction.
    """

    def __init__(self, db: Session, config: PipelineConfig | None = None):
        self.db = db
        self.repo = WalletRepo(db)
        self.config = config or PipelineConfig()

    # queries
    def get_wallet(self, user_id: str) -> WalletModel:
        wallet = self.repo.get_wallet(user_id)
        if not wallet:
            raise NotFoundError("Wallet", user_id)
        return wallet

    def has_sufficient_balance(self, user_id: str, amount) -> bool:
        """Advisory pre-check, not authoritative under concurrency."""
        wallet = self.repo.get_wallet(user_id)
        if not wallet:
            return False
        required = to_decimal(amount)
        balance = to_decimal(wallet.balance)
        sufficient = balance + self.config.balance_epsilon >= required
        logger.info(f"Balance check user={user_id} required={required} available={balance} ok={sufficient}")
        return sufficient

    def available_balance(self, user_id: str) -> Decimal:
        """Balance minus wallet reservations of orders still awaiting delivery."""
        wallet = self.repo.get_wallet(user_id)
        if not wallet:
            return ZERO
        return to_decimal(wallet.balance) - self.repo.reserved_total(user_id)

    def balance_check(self, user_id: str, amount) -> dict:
        wallet = self.repo.get_wallet(user_id)
        return {
            "user_id": user_id,
            "amount": to_decimal(amount),
            "balance": to_decimal(wallet.balance) if wallet else ZERO,
            "available": self.available_balance(user_id),
            "sufficient": self.has_sufficient_balance(user_id, amount),
        }

    def get_transactions(self, user_id: str, page: int = 1, limit: int = 20) -> dict:
        wallet = self.get_wallet(user_id)
        page = max(page, 1)
        rows, total = self.repo.list_transactions(wallet.id, (page - 1) * limit, limit)
        return {
            "data": rows,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit if limit else 0,
        }

    def find_purchase(self, reference: str) -> WalletTransactionModel | None:
        return self.repo.find_transaction(reference, TransactionType.PURCHASE.value)

    # commands
    def get_or_create_wallet(self, user_id: str, tenant_id: str | None = None, commit: bool = True) -> WalletModel:
        wallet = self.repo.get_wallet(user_id)
        if wallet:
            return wallet

        wallet = self.repo.add_wallet(
            WalletModel(user_id=user_id, tenant_id=tenant_id, balance=ZERO, currency=self.config.currency)
        )
        if commit:
            self.db.commit()
        logger.info(f"Created wallet {wallet.id} for user {user_id}")
        return wallet

    def debit(
        self,
        user_id: str,
        amount,
        description: str,
        description_ar: str,
        reference: str | None = None,
        commit: bool = True,
    ) -> LedgerEntry:
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        def apply(wallet: WalletModel) -> Decimal:
            if to_decimal(wallet.balance) < amount:
                raise InsufficientBalanceError("Insufficient wallet balance")
            return -amount

        entry = self._append(user_id, apply, TransactionType.PURCHASE, description, description_ar, reference, commit)
        logger.info(f"Debited {amount} from wallet {entry.wallet.id}. New balance: {entry.wallet.balance}")
        return entry

    def credit(
        self,
        user_id: str,
        amount,
        description: str,
        description_ar: str,
        reference: str | None = None,
        tx_type: TransactionType = TransactionType.TOPUP,
        commit: bool = True,
    ) -> LedgerEntry:
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if tx_type == TransactionType.PURCHASE:
            raise ValidationError("A credit cannot be recorded as a purchase")

        if tx_type == TransactionType.TOPUP:
            self.get_or_create_wallet(user_id, commit=False)

        entry = self._append(user_id, lambda _wallet: amount, tx_type, description, description_ar, reference, commit)
        logger.info(f"Credited {amount} to wallet {entry.wallet.id}. New balance: {entry.wallet.balance}")
        return entry

    def _append(self, user_id, apply, tx_type, description, description_ar, reference, commit) -> LedgerEntry:
        try:
            wallet = self.repo.get_wallet(user_id, for_update=True)
            if not wallet:
                raise NotFoundError("Wallet", user_id)

            balance_before = to_decimal(wallet.balance)
            last = self.repo.last_transaction(wallet.id)
            if last is not None and to_decimal(last.balance_after) != balance_before:
                raise IntegrityViolationError(
                    f"Ledger of wallet {wallet.id} ends at {last.balance_after} "
                    f"but balance is {balance_before}"
                )

            signed_amount = apply(wallet)
            balance_after = round_money(balance_before + signed_amount)
            if balance_after < 0:
                raise InsufficientBalanceError("Insufficient wallet balance")

            wallet.balance = balance_after
            transaction = self.repo.add_transaction(
                WalletTransactionModel(
                    wallet_id=wallet.id,
                    seq=(last.seq + 1) if last is not None else 1,
                    type=tx_type.value,
                    amount=signed_amount,
                    balance_before=balance_before,
                    balance_after=balance_after,
                    currency=wallet.currency,
                    description=description,
                    description_ar=description_ar,
                    reference=reference,
                    status="COMPLETED",
                )
            )
            if commit:
                self.db.commit()
        except IntegrityError as e:
            if commit:
                self.db.rollback()
            # duplicate (reference, type) or a concurrent append took our seq
            raise ConflictError(f"Wallet ledger rejected {tx_type.value} entry for {reference}") from e
        except Exception:
            if commit:
                self.db.rollback()
            raise

        return LedgerEntry(wallet=wallet, transaction=transaction)
