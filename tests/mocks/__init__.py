from reconciler.core.utils import to_gid
from reconciler.schemas.catalog import Variant


def make_variant(number: int, **overrides) -> Variant:
    """Variant with predictable ids: ProductVariant/<n>, InventoryItem/<n + 1000>."""
    data = {
        "id": to_gid("ProductVariant", number),
        "sku": f"SKU-{number}",
        "title": f"Variant {number}",
        "quantity": 0,
        "product_id": to_gid("Product", 1),
        "product_title": "Sapim CX-Ray Spoke Black",
        "sync_key": None,
        "alert_threshold": None,
        "monitoring_enabled": True,
        "historical_order_count": 0,
        "inventory_item_id": to_gid("InventoryItem", number + 1000),
        "image_url": None,
        "product_url": "https://shop.example.com/products/cx-ray",
        "product_handle": "cx-ray",
    }
    data.update(overrides)
    return Variant(**data)
