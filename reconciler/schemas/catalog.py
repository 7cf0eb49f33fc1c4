"""
Catalog entities as read from the commerce platform.
"""
from typing import Optional
from pydantic import BaseModel

from reconciler.core.utils import gid_to_id


class Variant(BaseModel):
    """A product variant plus the custom fields the engine cares about."""

    id: str
    sku: Optional[str] = None
    title: str = ""
    quantity: int = 0
    product_id: Optional[str] = None
    product_title: str = ""
    sync_key: Optional[str] = None
    alert_threshold: Optional[int] = None
    monitoring_enabled: bool = False
    historical_order_count: int = 0
    inventory_item_id: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    product_handle: Optional[str] = None

    @property
    def numeric_id(self) -> str:
        return gid_to_id(self.id)

    @property
    def has_sync_key(self) -> bool:
        return bool(self.sync_key and self.sync_key.strip())

    @property
    def is_low_stock(self) -> bool:
        """Strictly below a positive threshold; no threshold means not monitored."""
        if not self.monitoring_enabled:
            return False
        if self.alert_threshold is None or self.alert_threshold <= 0:
            return False
        return self.quantity < self.alert_threshold
