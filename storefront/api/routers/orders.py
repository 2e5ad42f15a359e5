# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query, Request

from storefront.api.dependencies import get_pipeline, get_tenant_id
from storefront.domain.schemas import CreateOrderIn, OrderOut, OrderListOut, ReasonIn
from storefront.services.order_service import serialize_order
from storefront.services.pipeline import Pipeline

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: CreateOrderIn,
    request: Request,
    user_id: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Places an order from a cart. Digital goods are delivered right away
    when the order is paid or wallet-reserved; codes stay masked until the
    wallet debit settles.
    """
    ip_address = request.client.host if request.client else None
    order = pipeline.orders.create_order(tenant_id, payload, user_id=user_id, ip_address=ip_address)
    return serialize_order(order)


@router.get("/", response_model=OrderListOut)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: str | None = Query(None),
    customer_email: str | None = Query(None),
    user_id: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return pipeline.orders.list_orders(tenant_id, page, limit, status, customer_email, user_id)


@router.get("/search", response_model=OrderListOut)
def search_orders(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return pipeline.orders.search_orders(tenant_id, q, page, limit)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    user_id: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return serialize_order(pipeline.orders.get_order(tenant_id, order_id, user_id))


@router.post("/{order_id}/retry-delivery", response_model=OrderOut)
def retry_delivery(
    order_id: str,
    user_id: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return serialize_order(pipeline.fulfillment.retry_delivery(tenant_id, order_id, user_id))


@router.post("/{order_id}/reveal", response_model=OrderOut)
def reveal_codes(
    order_id: str,
    user_id: str = Query(...),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return serialize_order(pipeline.fulfillment.reveal(tenant_id, order_id, user_id))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    payload: ReasonIn | None = None,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    reason = payload.reason if payload else None
    return serialize_order(pipeline.compensation.cancel_order(tenant_id, order_id, reason))


@router.post("/{order_id}/reject", response_model=OrderOut)
def reject_order(
    order_id: str,
    payload: ReasonIn | None = None,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    reason = payload.reason if payload else None
    return serialize_order(pipeline.compensation.reject_order(tenant_id, order_id, reason))


@router.post("/{order_id}/refund", response_model=OrderOut)
def refund_order(
    order_id: str,
    payload: ReasonIn | None = None,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    reason = payload.reason if payload else None
    return serialize_order(pipeline.compensation.refund_order(tenant_id, order_id, reason))
