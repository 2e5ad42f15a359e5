# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header, Request

from storefront.api.dependencies import get_pipeline
from storefront.domain.schemas import WebhookResultOut
from storefront.services.pipeline import Pipeline

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookResultOut)
async def payment_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(None),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Gateway notification; the signature covers the raw request body."""
    raw_body = await request.body()
    return pipeline.webhooks.handle_webhook(raw_body, x_webhook_signature)
