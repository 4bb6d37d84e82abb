"""
Shopify webhook receivers.

Once a webhook is authenticated it is always acknowledged with 200, even
when processing fails, so Shopify's retry/backoff does not pile onto a
persistent failure. Outcomes are in the response message and the logs.
"""
import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.config import settings
from app.dependencies import get_order_sync_service
from app.errors import UpstreamAPIError
from app.integrations.shopify import ShopifyCustomer, verify_webhook_hmac
from app.schemas.webhooks import (
    LineItemResultResponse,
    ProductCancellationPayload,
    WebhookResponse,
)
from app.services.order_sync import OrderSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


async def verify_shopify_webhook(request: Request) -> bytes:
    """Dependency: check the HMAC header and hand back the raw body"""
    body = await request.body()
    if not settings.shopify_webhook_verification:
        return body
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    if not verify_webhook_hmac(body, hmac_header, settings.shopify_api_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    return body


@router.post("/shopify", response_model=WebhookResponse)
async def shopify_order_webhook(
    request: Request,
    body: bytes = Depends(verify_shopify_webhook),
    service: OrderSyncService = Depends(get_order_sync_service),
):
    """
    Receive Shopify order lifecycle webhooks (orders/create, orders/paid,
    orders/cancelled, refunds/create) and sync LearnWorlds enrollments.
    """
    topic = request.headers.get("X-Shopify-Topic", "")
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    try:
        result = await service.handle_order_event(topic, payload)
    except Exception as e:
        logger.exception("Unhandled error processing Shopify %s webhook", topic)
        return WebhookResponse(success=False, message=f"Event handling failed: {e}")

    return WebhookResponse(
        success=result.success,
        message=result.message,
        order_id=result.order_id,
        items=[
            LineItemResultResponse(
                product_id=item.product_id,
                title=item.title,
                course_id=item.course_id,
                status=item.status,
                detail=item.detail,
            )
            for item in result.items
        ],
    )


@router.post("/product-subscription-cancelled")
async def product_subscription_cancelled(
    body: bytes = Depends(verify_shopify_webhook),
    service: OrderSyncService = Depends(get_order_sync_service),
):
    """Unenroll a customer from the course behind one cancelled subscription product"""
    try:
        data = ProductCancellationPayload.model_validate_json(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    if not data.customer or not data.customer.email or data.product_id in (None, ""):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    customer = ShopifyCustomer(
        id=str(data.customer.id) if data.customer.id is not None else None,
        email=data.customer.email,
        first_name=data.customer.first_name or "",
        last_name=data.customer.last_name or "",
    )
    try:
        outcome = await service.handle_product_cancellation(customer, str(data.product_id), data.product_title or "")
    except UpstreamAPIError as e:
        logger.error("Product cancellation for %s failed: %s", customer.email, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No matching course found for this product")
    return {"success": True, "outcome": outcome.value}
