# storefront/api/routers/inventory.py
from fastapi import APIRouter, Depends, Query

from storefront.api.dependencies import get_pipeline, get_tenant_id
from storefront.domain.schemas import EmergencyUpsertIn, EmergencyListOut, AuditOut
from storefront.services.pipeline import Pipeline

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/emergency", response_model=EmergencyListOut)
def list_emergency_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return pipeline.emergency.list_items(tenant_id, page, limit, search)


@router.post("/emergency", status_code=201)
def upsert_emergency_items(
    payload: EmergencyUpsertIn,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    count = pipeline.emergency.upsert_emergency_items(
        tenant_id, [item.model_dump() for item in payload.items]
    )
    return {"upserted": count}


@router.delete("/emergency/{product_id}", status_code=204)
def remove_emergency_item(
    product_id: str,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    pipeline.emergency.remove_item(tenant_id, product_id)


@router.post("/emergency/audit", response_model=AuditOut)
def run_emergency_audit(
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return {
        "cost_gt_price": pipeline.emergency.auto_add_cost_gt_price(tenant_id),
        "needed": pipeline.emergency.auto_add_needed(tenant_id),
    }
