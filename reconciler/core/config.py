# reconciler/core/config.py

import os
from functools import lru_cache
from typing import List, Optional, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings, NoDecode


def _parse_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


CommaList = Annotated[List[str], NoDecode, BeforeValidator(lambda v: _parse_list(v))]


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Webhooks
    SHOPIFY_WEBHOOK_SECRET: str = ""

    # Shopify Admin API
    SHOPIFY_SHOP_URL: Optional[str] = None
    SHOPIFY_ADMIN_API_ACCESS_TOKEN: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-04"
    SHOPIFY_REQUEST_TIMEOUT: int = 30
    STOREFRONT_URL: str = ""  # Used when a product has no onlineStoreUrl

    # Durable store
    REDIS_URL: str = "redis://localhost:6379/0"

    # SMTP / Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: Optional[str] = None

    # Email notifications
    NOTIFICATION_EMAILS: CommaList = []
    OWNER_NOTIFICATION_EMAIL: str = ""

    # Reconciliation tuning
    LOW_STOCK_COOLDOWN_HOURS: float = 4.0
    SIBLING_SEARCH_LIMIT: int = 50
    PRODUCT_SCAN_LIMIT: int = 250
    VARIANT_SCAN_LIMIT: int = 100
    WAITLIST_CLAIM_TTL_SECONDS: int = 60
    LEDGER_MARKER_TTL_SECONDS: int = 60 * 60 * 24 * 30

    # Custom fields (metafields)
    METAFIELD_NAMESPACE: str = "custom"
    SYNC_KEY_FIELD: str = "inventory_sync_key"
    ALERT_THRESHOLD_FIELD: str = "inventory_alert_threshold"
    MONITORING_ENABLED_FIELD: str = "inventory_monitoring_enabled"
    ORDER_COUNT_FIELD: str = "historical_order_count"

    # Low-stock scope
    MONITORED_PRODUCT_TAG: Optional[str] = None
    MONITORED_PRODUCT_TYPE: Optional[str] = None

    # Storefront sign-up form
    CORS_ALLOWED_ORIGINS: CommaList = []

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        frozen=True,
    )

    @property
    def low_stock_cooldown_ms(self) -> int:
        return int(self.LOW_STOCK_COOLDOWN_HOURS * 60 * 60 * 1000)


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()
