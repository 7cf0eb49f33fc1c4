"""
Inbound event payloads.

InventoryEvent and OrderEvent are built from Shopify webhook bodies and live only for
the duration of one delivery. NotificationRequest is the storefront's waitlist sign-up.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from reconciler.core.enums import OrderKind


class InventoryEvent(BaseModel):
    inventory_item_id: int
    location_id: Optional[int] = None
    available: int


class LineItem(BaseModel):
    id: Optional[int] = None
    variant_id: Optional[int] = None
    sku: Optional[str] = None
    quantity: int = 0
    product_type: Optional[str] = None


class OrderEvent(BaseModel):
    order_id: int
    line_items: List[LineItem] = Field(default_factory=list)
    kind: OrderKind = OrderKind.CREATED

    def contains_product_type(self, product_type: str) -> bool:
        return any(item.product_type == product_type for item in self.line_items)


class NotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    email: Optional[str] = None
    variant_id: Optional[str] = Field(default=None, alias="variantId")
    product_title: Optional[str] = Field(default=None, alias="productTitle")
    variant_title: Optional[str] = Field(default=None, alias="variantTitle")
    product_url: Optional[str] = Field(default=None, alias="productUrl")

    def missing_fields(self) -> List[str]:
        return [
            name for name, value in (
                ("email", self.email),
                ("variantId", self.variant_id),
                ("productTitle", self.product_title),
                ("variantTitle", self.variant_title),
                ("productUrl", self.product_url),
            )
            if not value or not str(value).strip()
        ]
