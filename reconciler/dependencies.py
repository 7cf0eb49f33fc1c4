from functools import lru_cache

from reconciler.core.config import get_settings
from reconciler.services.notification_service import EmailNotificationService
from reconciler.services.shopify.client import ShopifyGraphQLClient
from reconciler.services.state_store import RedisStateStore
from reconciler.services.waitlist_service import WaitlistService
from reconciler.services.webhook_processor import WebhookProcessor


@lru_cache()
def get_catalog_client() -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(get_settings())


@lru_cache()
def get_state_store() -> RedisStateStore:
    return RedisStateStore.from_settings(get_settings())


def get_notifier() -> EmailNotificationService:
    return EmailNotificationService(get_settings())


def get_webhook_processor() -> WebhookProcessor:
    """Fresh processor per delivery; only the connection-holding clients are shared."""
    return WebhookProcessor(
        catalog=get_catalog_client(),
        store=get_state_store(),
        notifier=get_notifier(),
        settings=get_settings(),
    )


def get_waitlist_service() -> WaitlistService:
    return WaitlistService(get_state_store(), get_notifier(), get_settings())
