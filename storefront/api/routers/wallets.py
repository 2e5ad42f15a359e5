# storefront/api/routers/wallets.py
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from storefront.api.dependencies import get_pipeline, get_tenant_id
from storefront.domain.schemas import BalanceCheckOut, WalletOut, TopUpIn, WalletTransactionListOut
from storefront.services.pipeline import Pipeline

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.get("/{user_id}", response_model=WalletOut)
def get_wallet(
    user_id: str,
    pipeline: Pipeline = Depends(get_pipeline),
):
    return pipeline.wallet.get_wallet(user_id)


@router.get("/{user_id}/balance-check", response_model=BalanceCheckOut)
def balance_check(
    user_id: str,
    amount: Decimal = Query(..., gt=0),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Advisory only, the order itself re-checks under the payer lock."""
    return pipeline.wallet.balance_check(user_id, amount)


@router.get("/{user_id}/transactions", response_model=WalletTransactionListOut)
def get_transactions(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return pipeline.wallet.get_transactions(user_id, page, limit)


@router.post("/{user_id}/top-up", response_model=WalletOut)
def top_up(
    user_id: str,
    payload: TopUpIn,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    pipeline.wallet.get_or_create_wallet(user_id, tenant_id)
    entry = pipeline.wallet.credit(
        user_id,
        payload.amount,
        description=payload.description or "Wallet top-up",
        description_ar="شحن المحفظة",
        reference=payload.reference,
    )
    return entry.wallet
