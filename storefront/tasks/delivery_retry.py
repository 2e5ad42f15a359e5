# storefront/tasks/delivery_retry.py
from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.domain.errors import StorefrontError
from storefront.repos.order_repo import OrderRepo
from storefront.services.fulfillment_service import FulfillmentOrchestrator
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.pipeline import build_pipeline
from storefront.services.supplier_client import SupplierHubClient
from storefront.utils.settings import PipelineConfig
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def retry_undelivered_orders(db: Session, fulfillment: FulfillmentOrchestrator, max_attempts: int, limit: int = 50) -> dict:
    """Resume paid or wallet-reserved orders whose digital delivery never completed."""
    order_ids = OrderRepo(db).find_retry_candidates(max_attempts, limit)
    logger.info(f"Found {len(order_ids)} orders awaiting digital delivery")

    summary = {"checked": len(order_ids), "delivered": 0, "failed": 0}
    for order_id in order_ids:
        try:
            order = fulfillment.fulfill(order_id)
        except StorefrontError as e:
            db.rollback()
            logger.warning(f"Delivery retry for order {order_id} failed: {e}")
            summary["failed"] += 1
            continue
        except Exception as e:
            db.rollback()
            logger.error(f"Unexpected error retrying delivery for order {order_id}: {e}")
            summary["failed"] += 1
            continue
        if order.status == "DELIVERED":
            summary["delivered"] += 1
        else:
            summary["failed"] += 1
    return summary


@celery_app.task(name="storefront.tasks.delivery_retry.retry_undelivered_orders_task")
def retry_undelivered_orders_task():
    logger.info("Delivery retry task started")

    config = PipelineConfig.from_env()
    db = SessionLocal()
    try:
        pipeline = build_pipeline(
            db,
            config=config,
            supplier_client=SupplierHubClient(),
            locks=LockService(),
            notifier=NotificationService(),
        )
        summary = retry_undelivered_orders(db, pipeline.fulfillment, config.delivery_max_attempts)
        logger.info(f"Delivery retry task finished: {summary}")
        return summary
    finally:
        db.close()
