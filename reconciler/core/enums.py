"""
Shared enums and constants used across the application.
"""

from enum import Enum


class WebhookTopic(str, Enum):
    INVENTORY_LEVELS_UPDATE = "inventory_levels/update"
    ORDERS_CREATE = "orders/create"
    ORDERS_CANCELLED = "orders/cancelled"


class OrderKind(str, Enum):
    CREATED = "CREATED"
    CANCELLED = "CANCELLED"


class ReportType(str, Enum):
    """Report kinds that carry their own cooldown marker"""
    LOW_STOCK = "low_stock"


# Durable store keys
WAITLIST_KEY_PREFIX = "stock_notification_requests"
WAITLIST_CLAIM_PREFIX = "stock_notification_claim"
LOW_STOCK_SNAPSHOT_KEY = "last_report_list_json"
COOLDOWN_KEY_PREFIX = "report_cooldown"
LEDGER_MARKER_PREFIX = "order_ledger_applied"


def waitlist_key(variant_id: str) -> str:
    return f"{WAITLIST_KEY_PREFIX}:{variant_id}"


def cooldown_key(report_type: ReportType) -> str:
    return f"{COOLDOWN_KEY_PREFIX}:{report_type.value}"
