# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Fire-and-forget notifications for merchants and customers.
    Work is handed to Celery; a failure to enqueue is logged and dropped.
    """

    def send_notification(
        self,
        tenant_id: str,
        audience: str,
        title: dict,
        body: dict,
        data: dict | None = None,
        user_id: str | None = None,
        target_email: str | None = None,
    ) -> None:
        payload = {
            "tenant_id": tenant_id,
            "audience": audience,
            "title": title,
            "body": body,
            "data": data or {},
            "user_id": user_id,
            "target_email": target_email,
        }
        try:
            send_notification_task.delay(payload)
        except Exception as e:
            logger.warning(f"Notification for tenant {tenant_id} dropped: {e}")


@celery_app.task(name="storefront.services.notification_service.send_notification_task")
def send_notification_task(payload: dict):
    """
    Delivery channels (email, push) live outside this service; the task
    records the notification so operators can trace it.
    """
    logger.info(
        f"[NOTIFICATION] tenant={payload.get('tenant_id')} audience={payload.get('audience')} "
        f"title={payload.get('title', {}).get('en')}"
    )
    return {"tenant_id": payload.get("tenant_id"), "status": "sent"}
