# storefront/api/dependencies.py
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.pipeline import Pipeline, build_pipeline
from storefront.services.supplier_client import SupplierHubClient
from storefront.utils.settings import PipelineConfig, PAYMENT_WEBHOOK_SECRET


@lru_cache
def get_config() -> PipelineConfig:
    return PipelineConfig.from_env()


@lru_cache
def get_supplier_client() -> SupplierHubClient:
    return SupplierHubClient()


@lru_cache
def get_lock_service() -> LockService:
    return LockService()


def get_pipeline(db: Session = Depends(get_db)) -> Pipeline:
    return build_pipeline(
        db,
        config=get_config(),
        supplier_client=get_supplier_client(),
        locks=get_lock_service(),
        notifier=NotificationService(),
        webhook_secret=PAYMENT_WEBHOOK_SECRET,
    )


def get_tenant_id(x_tenant_id: str = Header(..., min_length=1)) -> str:
    return x_tenant_id
