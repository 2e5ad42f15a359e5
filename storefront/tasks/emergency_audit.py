# storefront/tasks/emergency_audit.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.product_repo import ProductRepo
from storefront.services.emergency_inventory_service import EmergencyInventoryService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def run_emergency_audit(service: EmergencyInventoryService, tenant_ids: list[str]) -> dict:
    totals = {"tenants": len(tenant_ids), "cost_gt_price": 0, "needed": 0}
    for tenant_id in tenant_ids:
        totals["cost_gt_price"] += service.auto_add_cost_gt_price(tenant_id)
        totals["needed"] += service.auto_add_needed(tenant_id)
    return totals


@celery_app.task(name="storefront.tasks.emergency_audit.emergency_inventory_audit_task")
def emergency_inventory_audit_task():
    logger.info("Emergency inventory audit started")

    db = SessionLocal()
    try:
        tenant_ids = ProductRepo(db).list_tenant_ids()
        totals = run_emergency_audit(EmergencyInventoryService(db), tenant_ids)
        logger.info(f"Emergency inventory audit finished: {totals}")
        return totals
    finally:
        db.close()
