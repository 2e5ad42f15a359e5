# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    DELIVERY_RETRY_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly so the worker registers them
celery_app.conf.imports = (
    "storefront.tasks.delivery_retry",
    "storefront.tasks.emergency_audit",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "retry-undelivered-orders": {
        "task": "storefront.tasks.delivery_retry.retry_undelivered_orders_task",
        "schedule": DELIVERY_RETRY_INTERVAL_SECONDS,
    },
    "emergency-inventory-audit": {
        "task": "storefront.tasks.emergency_audit.emergency_inventory_audit_task",
        "schedule": 60.0 * 60,
    },
}

celery_app.conf.timezone = "UTC"
