"""
Sibling stock synchronization.

Variants that represent the same physical unit share a sync key custom field. When one
of them changes quantity, every sibling is corrected to the same quantity with a delta
adjustment.

Resolution is two-phase: a broad free-text search on the first words of the product
title (the search index lags behind the sync key field, so searching by key can miss
freshly tagged variants), followed by a strict in-process filter on the exact key.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from reconciler.core.config import Settings
from reconciler.core.exceptions import ConfigurationError, RemoteServiceError
from reconciler.core.utils import first_words
from reconciler.schemas.catalog import Variant

logger = logging.getLogger(__name__)

SEARCH_WORD_COUNT = 3


@dataclass
class SiblingAdjustment:
    variant_id: str
    sku: Optional[str]
    previous_quantity: int
    delta: int


@dataclass
class SiblingSyncResult:
    sync_key: Optional[str] = None
    target_quantity: Optional[int] = None
    candidates_found: int = 0
    adjusted: List[SiblingAdjustment] = field(default_factory=list)
    failures: List[dict] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures


class SiblingSyncService:
    def __init__(self, catalog, settings: Settings):
        self.catalog = catalog
        self.settings = settings

    def find_siblings(self, trigger: Variant, target_quantity: int) -> List[Variant]:
        """Variants sharing the trigger's key that are not already at ``target_quantity``."""
        query_string = first_words(trigger.product_title, SEARCH_WORD_COUNT)
        if not query_string:
            logger.warning("Variant %s has no product title to search on", trigger.id)
            return []

        candidates = self.catalog.search_variants(query_string, limit=self.settings.SIBLING_SEARCH_LIMIT)
        logger.debug("Search '%s' returned %d candidates for key %s", query_string, len(candidates), trigger.sync_key)

        siblings: List[Variant] = []
        seen = set()
        for candidate in candidates:
            if candidate.sync_key != trigger.sync_key:
                continue
            if candidate.id == trigger.id or candidate.id in seen:
                continue
            if candidate.quantity == target_quantity:
                continue
            seen.add(candidate.id)
            siblings.append(candidate)
        return siblings

    def sync_siblings(self, trigger: Variant, target_quantity: int, location_id) -> SiblingSyncResult:
        """
        Bring every sibling of ``trigger`` to ``target_quantity`` at ``location_id``.

        Adjustments run one at a time; a failing sibling is logged and recorded without
        stopping the others.

        Raises:
            ConfigurationError: no location accompanies the event.
        """
        result = SiblingSyncResult(sync_key=trigger.sync_key, target_quantity=target_quantity)
        if not trigger.has_sync_key:
            result.skipped_reason = "no_sync_key"
            return result

        if location_id is None or str(location_id).strip() == "":
            raise ConfigurationError(
                f"Cannot sync siblings of {trigger.id}: inventory event carried no location id"
            )

        siblings = self.find_siblings(trigger, target_quantity)
        result.candidates_found = len(siblings)
        if not siblings:
            logger.info("Sync group %s already consistent at %d", trigger.sync_key, target_quantity)
            return result

        for sibling in siblings:
            delta = target_quantity - sibling.quantity
            if not sibling.inventory_item_id:
                logger.error("Sibling adjustment skipped variant=%s reason=no_inventory_item", sibling.id)
                result.failures.append({"variant_id": sibling.id, "error": "missing inventory item id"})
                continue
            try:
                self.catalog.adjust_quantity(sibling.inventory_item_id, location_id, delta)
            except RemoteServiceError as exc:
                logger.error(
                    "Sibling adjustment failed variant=%s sku=%s delta=%d location=%s error=%s",
                    sibling.id, sibling.sku, delta, location_id, exc,
                )
                result.failures.append({"variant_id": sibling.id, "delta": delta, "error": str(exc)})
                continue

            logger.info(
                "Adjusted sibling variant=%s sku=%s by %+d (%d -> %d)",
                sibling.id, sibling.sku, delta, sibling.quantity, target_quantity,
            )
            result.adjusted.append(SiblingAdjustment(
                variant_id=sibling.id,
                sku=sibling.sku,
                previous_quantity=sibling.quantity,
                delta=delta,
            ))

        return result
