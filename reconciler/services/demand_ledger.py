"""
Historical order counter kept in a variant custom field.

Created orders add each line item's quantity, cancelled orders subtract it (never
below zero). Line items are independent: one failing item is logged and recorded and
the rest are still processed.

Order webhooks are redelivered whenever a delivery fails, so every line item
claims a marker in the store first and is skipped by any other delivery of the same order.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from reconciler.core.config import Settings
from reconciler.core.enums import LEDGER_MARKER_PREFIX, OrderKind
from reconciler.core.exceptions import RemoteServiceError
from reconciler.core.utils import parse_int_field, to_gid
from reconciler.schemas.events import LineItem, OrderEvent

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    updated: List[dict] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)
    failures: List[dict] = field(default_factory=list)


def marker_key(event: OrderEvent, item: LineItem) -> str:
    line_ref = item.id if item.id is not None else f"v{item.variant_id}"
    return f"{LEDGER_MARKER_PREFIX}:{event.kind.value.lower()}:{event.order_id}:{line_ref}"


class DemandLedger:
    def __init__(self, catalog, store, settings: Settings):
        self.catalog = catalog
        self.store = store
        self.settings = settings

    def apply(self, event: OrderEvent) -> LedgerResult:
        result = LedgerResult()
        sign = 1 if event.kind == OrderKind.CREATED else -1
        namespace = self.settings.METAFIELD_NAMESPACE
        key = self.settings.ORDER_COUNT_FIELD
        marker_ttl_ms = self.settings.LEDGER_MARKER_TTL_SECONDS * 1000

        for item in event.line_items:
            if item.variant_id is None:
                result.skipped.append({"sku": item.sku, "variant_id": item.variant_id, "reason": "no_variant"})
                continue
            if item.quantity <= 0:
                result.skipped.append({"sku": item.sku, "variant_id": item.variant_id, "reason": "no_quantity"})
                continue

            # Claimed before the counter is read: concurrent deliveries count the line once
            marker = marker_key(event, item)
            if not self.store.claim(marker, marker_ttl_ms):
                result.skipped.append({"sku": item.sku, "variant_id": item.variant_id, "reason": "already_applied"})
                continue

            owner_id = to_gid("ProductVariant", item.variant_id)
            try:
                current = parse_int_field(self.catalog.get_field(owner_id, namespace, key)) or 0
                new_count = max(0, current + sign * item.quantity)
                self.catalog.set_field(owner_id, namespace, key, new_count, type_name="number_integer")
            except RemoteServiceError as exc:
                logger.error(
                    "Order counter update failed order=%s variant=%s sku=%s quantity=%d kind=%s error=%s",
                    event.order_id, item.variant_id, item.sku, item.quantity, event.kind.value, exc,
                )
                # Release so a redelivery retries this line
                self.store.delete(marker)
                result.failures.append({"variant_id": item.variant_id, "sku": item.sku, "error": str(exc)})
                continue

            logger.info(
                "Order counter for variant %s (%s): %d -> %d", item.variant_id, item.sku, current, new_count
            )
            result.updated.append({"variant_id": item.variant_id, "sku": item.sku, "from": current, "to": new_count})

        return result
