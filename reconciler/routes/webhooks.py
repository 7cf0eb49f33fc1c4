import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from reconciler.core.security import TOPIC_HEADER, verified_webhook_body
from reconciler.dependencies import get_webhook_processor
from reconciler.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/shopify")
async def shopify_webhook(
    request: Request,
    body: bytes = Depends(verified_webhook_body),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Endpoint receiving inventory and order webhooks from Shopify"""
    topic = request.headers.get(TOPIC_HEADER)
    # Catalog, store and SMTP calls block; run the delivery on a worker thread
    outcome = await asyncio.to_thread(processor.process, body, topic)
    logger.info("Webhook %s handled: %s", topic, outcome.status)
    return outcome.to_dict()
