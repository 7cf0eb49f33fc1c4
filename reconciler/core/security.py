"""
Webhook signature verification.

Shopify signs every delivery with base64(HMAC-SHA256(secret, raw body)). The digest
must be computed over the exact bytes received; hashing a re-serialized JSON document
produces false rejections.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Depends, Request

from reconciler.core.config import Settings, get_settings
from reconciler.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: str) -> None:
    """Raise AuthenticationError unless ``signature`` matches ``raw_body``."""
    if not secret:
        raise AuthenticationError("Webhook secret is not configured")
    if not signature:
        raise AuthenticationError("No signature provided")

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(signature.strip().encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("Invalid signature")


async def verified_webhook_body(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> bytes:
    """
    FastAPI dependency returning the raw body once its signature checks out.
    Usage: body: bytes = Depends(verified_webhook_body)
    """
    body = await request.body()
    try:
        verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER), settings.SHOPIFY_WEBHOOK_SECRET)
    except AuthenticationError as exc:
        logger.warning("Webhook verification failed: %s", exc)
        raise
    return body
