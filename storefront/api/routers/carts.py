# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query

from storefront.api.dependencies import get_pipeline, get_tenant_id
from storefront.domain.errors import NotFoundError
from storefront.domain.schemas import CreateCartIn, ItemIn, CartOut
from storefront.services.pipeline import Pipeline

router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_out(pipeline: Pipeline, cart) -> dict:
    totals = pipeline.carts.calculate_cart_total(cart)
    return {
        "id": cart.id,
        "tenant_id": cart.tenant_id,
        "session_id": cart.session_id,
        "user_id": cart.user_id,
        "items": [
            {"product_id": i.product_id, "variant_id": i.variant_id, "quantity": i.quantity, "price": i.price}
            for i in cart.items
        ],
        "subtotal": totals.subtotal,
        "discount": totals.discount,
        "tax": totals.tax,
        "shipping": totals.shipping,
        "total": totals.total,
    }


@router.post("/", response_model=CartOut)
def create_cart(
    payload: CreateCartIn,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    pipeline.tenants.ensure_tenant(tenant_id)
    cart = pipeline.carts.get_or_create_cart(tenant_id, payload.session_id, payload.user_id)
    return _cart_out(pipeline, pipeline.carts.get_cart(tenant_id, cart.id))


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: str,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    cart = pipeline.carts.get_cart(tenant_id, cart_id)
    if not cart:
        raise NotFoundError("Cart", cart_id)
    return _cart_out(pipeline, cart)


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(
    cart_id: str,
    payload: ItemIn,
    user_id: str | None = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    cart = pipeline.carts.add_item(
        tenant_id,
        cart_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variant_id=payload.variant_id,
        user_id=user_id,
    )
    return _cart_out(pipeline, cart)


@router.delete("/{cart_id}/items", status_code=204)
def clear_cart(
    cart_id: str,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    pipeline.carts.clear_cart(tenant_id, cart_id)
